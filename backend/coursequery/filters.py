# filters.py
"""
Turns request query parameters into a QueryPlan.

Every recognized parameter compiles to a fixed clause template plus bound
values; request text never reaches the SQL string. Unrecognized parameters
are ignored and blank ones impose nothing.
"""
import math
from typing import Any, Dict, List, Mapping, Optional

from .errors import FilterValidationError
from .query_plan import (
    JOIN_GRADES,
    JOIN_INSTRUCTORS,
    JOIN_RATINGS,
    JOIN_SECTIONS,
    Predicate,
    QueryPlan,
)

DEFAULT_LIMIT = 10
MAX_LIMIT = 100
# OFFSET is a bigint in PostgreSQL.
MAX_OFFSET = 2**63 - 1

# Breadth flags filter on a fixed code per flag. The submitted value only
# switches the filter on: humanities=true and humanities=whatever are the same.
BREADTH_FLAG_CODES: Dict[str, str] = {
    "ethnic_studies": "E",
    "social_science": "S",
    "humanities": "H",
    "biological_science": "B",
    "physical_science": "P",
    "natural_science": "N",
    "literature": "L",
}

# param -> (column, operator, integer-only)
COURSE_THRESHOLDS = {
    "min_credits": ("c.minimum_credits", ">=", False),
    "max_credits": ("c.maximum_credits", "<=", False),
}
GRADE_THRESHOLDS = {
    "min_cumulative_gpa": ("g.cumulative_gpa", ">=", False),
    "min_most_recent_gpa": ("g.most_recent_gpa", ">=", False),
}
SECTION_THRESHOLDS = {
    "min_available_seats": ("s.available_seats", ">=", True),
}
OVERLAY_THRESHOLDS = {
    "min_section_avg_rating": ("sr.section_avg_rating", ">=", False),
    "min_section_avg_difficulty": ("sr.section_avg_difficulty", ">=", False),
    "min_section_total_ratings": ("COALESCE(sr.section_total_ratings, 0)", ">=", True),
    "min_section_avg_would_take_again": ("sr.section_avg_would_take_again", ">=", False),
}

RECOGNIZED_PARAMS = (
    ["status", "instruction_mode", "level", "search_param", "include_ratings", "limit", "page"]
    + list(BREADTH_FLAG_CODES)
    + list(COURSE_THRESHOLDS)
    + list(GRADE_THRESHOLDS)
    + list(SECTION_THRESHOLDS)
    + list(OVERLAY_THRESHOLDS)
)

_FALSE_STRINGS = {"false", "0", "no", "off"}


def _get(params: Mapping[str, Any], name: str) -> Optional[str]:
    raw = params.get(name)
    if raw is None:
        return None
    raw = str(raw).strip()
    return raw or None


def parse_number(name: str, raw: str, integer: bool = False) -> Any:
    """Parse a numeric filter value or raise FilterValidationError naming the parameter."""
    try:
        value = float(raw)
    except ValueError:
        raise FilterValidationError(name, raw, "must be an integer" if integer else "must be a number")
    if not math.isfinite(value):
        raise FilterValidationError(name, raw, "must be a finite number")
    if integer:
        if not value.is_integer():
            raise FilterValidationError(name, raw, "must be an integer")
        return int(value)
    return value


def coerce_limit(raw: Optional[str], default: int = DEFAULT_LIMIT, maximum: int = MAX_LIMIT) -> int:
    """Positive integer page size; junk or non-positive input falls back to the default."""
    try:
        limit = int(raw) if raw is not None else default
    except ValueError:
        limit = default
    if limit <= 0:
        limit = default
    return max(1, min(limit, maximum))


def coerce_page(raw: Optional[str], limit: int = DEFAULT_LIMIT) -> int:
    """
    1-based page number. Junk or non-positive input is page 1; pages whose
    offset would not fit in a bigint are clamped to the last one that does.
    """
    try:
        page = int(raw) if raw is not None else 1
    except ValueError:
        page = 1
    return max(1, min(page, MAX_OFFSET // limit + 1))


def _like_pattern(term: str) -> str:
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _threshold_predicates(
    plan: QueryPlan,
    params: Mapping[str, Any],
    table: Dict[str, tuple],
    tier: str,
    joins: List[str],
) -> None:
    for name, (column, op, integer) in table.items():
        raw = _get(params, name)
        if raw is None:
            continue
        value = parse_number(name, raw, integer=integer)
        plan.add(Predicate(tier=tier, clause=f"{column} {op} %s", params=[value], joins=joins))
        plan.filters_applied[name] = value


def parse_filters_to_plan(
    params: Mapping[str, Any],
    default_limit: int = DEFAULT_LIMIT,
    max_limit: int = MAX_LIMIT,
) -> QueryPlan:
    plan = QueryPlan()

    # --- course tier ---
    level = _get(params, "level")
    if level is not None:
        plan.add(Predicate(tier="course", clause="c.level = %s", params=[level]))
        plan.filters_applied["level"] = level

    _threshold_predicates(plan, params, COURSE_THRESHOLDS, "course", [])

    for flag, code in BREADTH_FLAG_CODES.items():
        if _get(params, flag) is None:
            continue
        plan.add(Predicate(tier="course", clause=f"c.{flag} = %s", params=[code]))
        plan.filters_applied[flag] = True

    _threshold_predicates(plan, params, GRADE_THRESHOLDS, "course", [JOIN_GRADES])

    search = _get(params, "search_param")
    if search is not None:
        pattern = _like_pattern(search)
        plan.add(Predicate(
            tier="course",
            clause=(
                "(c.course_designation ILIKE %s"
                " OR c.full_course_designation ILIKE %s"
                " OR EXISTS (SELECT 1 FROM instructor_set ist"
                " WHERE ist.section_id = s.section_id AND ist.instructor_name ILIKE %s))"
            ),
            params=[pattern, pattern, pattern],
            joins=[JOIN_SECTIONS, JOIN_INSTRUCTORS],
        ))
        plan.filters_applied["search_param"] = search

    # --- section tier ---
    status = _get(params, "status")
    if status is not None:
        statuses = [s.strip().upper() for s in status.split(",") if s.strip()]
        if len(statuses) == 1:
            plan.add(Predicate(tier="section", clause="s.status = %s", params=statuses, joins=[JOIN_SECTIONS]))
        elif statuses:
            plan.add(Predicate(tier="section", clause="s.status = ANY(%s)", params=[statuses], joins=[JOIN_SECTIONS]))
        if statuses:
            plan.filters_applied["status"] = statuses

    mode = _get(params, "instruction_mode")
    if mode is not None:
        plan.add(Predicate(tier="section", clause="s.instruction_mode = %s", params=[mode], joins=[JOIN_SECTIONS]))
        plan.filters_applied["instruction_mode"] = mode

    _threshold_predicates(plan, params, SECTION_THRESHOLDS, "section", [JOIN_SECTIONS])

    # --- overlay tier ---
    _threshold_predicates(plan, params, OVERLAY_THRESHOLDS, "overlay", [JOIN_SECTIONS, JOIN_RATINGS])

    include_ratings = _get(params, "include_ratings")
    if include_ratings is not None:
        plan.include_ratings = include_ratings.lower() not in _FALSE_STRINGS
        plan.filters_applied["include_ratings"] = plan.include_ratings

    # --- pagination ---
    plan.limit = coerce_limit(_get(params, "limit"), default=default_limit, maximum=max_limit)
    plan.page = coerce_page(_get(params, "page"), limit=plan.limit)
    plan.filters_applied["limit"] = plan.limit
    plan.filters_applied["page"] = plan.page

    return plan
