# resolver.py
"""
Association of scheduled instructor names with overlay rating records.

The overlay has no key into the scheduling data, so the join is on the name
string. Primary results use exact matching after trimming both sides; the
normalized (case-folded, whitespace-collapsed) rule is only offered for
diagnostics, since it can merge distinct people with similar names.

Splitting and matching run in SQL for query results (`instructor_set_cte`,
`rating_join_condition`). The Python functions apply the same rules and
serve the diagnostics lookup, which reports per name what each rule finds.
"""
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, Field

INSTRUCTOR_DELIMITER = ", "


class MatchMode(str, Enum):
    EXACT = "exact"
    NORMALIZED = "normalized"


def normalize_name(name: str) -> str:
    return " ".join(name.split()).upper()


def split_instructors(raw: Optional[str]) -> List[str]:
    """Split a delimited instructor field into trimmed, unique, non-blank names."""
    if not raw:
        return []
    names: List[str] = []
    for token in raw.split(INSTRUCTOR_DELIMITER):
        token = token.strip()
        if token and token not in names:
            names.append(token)
    return names


def names_match(a: str, b: str, mode: MatchMode = MatchMode.EXACT) -> bool:
    if mode == MatchMode.NORMALIZED:
        return normalize_name(a) == normalize_name(b)
    return a.strip() == b.strip()


def match_ratings(
    names: Iterable[str],
    ratings: Iterable[Dict[str, Any]],
    mode: MatchMode = MatchMode.EXACT,
) -> Dict[str, List[Dict[str, Any]]]:
    """
    Map every instructor name to the overlay records whose `full_name` matches it.
    Names without a match map to an empty list.
    """
    ratings = list(ratings)
    matched: Dict[str, List[Dict[str, Any]]] = {}
    for name in names:
        matched[name] = [
            r for r in ratings
            if r.get("full_name") is not None and names_match(r["full_name"], name, mode)
        ]
    return matched


# ---------------------------------------------------------------------------
# SQL side
# ---------------------------------------------------------------------------

_INSTRUCTORS_FROM_COLUMN = """
    instructor_set AS (
        SELECT
            s.section_id,
            btrim(t.name) AS instructor_name,
            MIN(t.position) AS position
        FROM sections s
        CROSS JOIN LATERAL unnest(string_to_array(s.instructors, '{delimiter}'))
            WITH ORDINALITY AS t(name, position)
        WHERE btrim(t.name) <> ''{scope}
        GROUP BY s.section_id, btrim(t.name)
    )"""

_INSTRUCTORS_FROM_TABLE = """
    instructor_set AS (
        SELECT
            si.section_id,
            btrim(si.instructor_name) AS instructor_name,
            MIN(si.position) AS position
        FROM section_instructors si
        JOIN sections s ON s.section_id = si.section_id
        WHERE btrim(si.instructor_name) <> ''{scope}
        GROUP BY si.section_id, btrim(si.instructor_name)
    )"""

_SCOPE_TO_COURSES = "\n          AND s.course_id = ANY(%s)"


def instructor_set_cte(source: str = "column", scoped: bool = False) -> str:
    """
    CTE body exposing the (section_id, instructor_name, position) relation for
    either instructor representation. When `scoped`, it takes one bind
    parameter: the list of course ids to restrict to.
    """
    template = _INSTRUCTORS_FROM_TABLE if source == "table" else _INSTRUCTORS_FROM_COLUMN
    return template.format(
        delimiter=INSTRUCTOR_DELIMITER,
        scope=_SCOPE_TO_COURSES if scoped else "",
    )


def rating_join_condition(
    mode: MatchMode = MatchMode.EXACT,
    rating_alias: str = "r",
    instructor_alias: str = "ist",
) -> str:
    if mode == MatchMode.NORMALIZED:
        return (
            f"upper(regexp_replace(btrim({rating_alias}.full_name), '\\s+', ' ', 'g')) = "
            f"upper(regexp_replace({instructor_alias}.instructor_name, '\\s+', ' ', 'g'))"
        )
    return f"btrim({rating_alias}.full_name) = {instructor_alias}.instructor_name"


# ---------------------------------------------------------------------------
# Diagnostics
# ---------------------------------------------------------------------------

class OverlayMatch(BaseModel):
    rating_id: Optional[int] = None
    full_name: str
    avg_rating: Optional[float] = None
    avg_difficulty: Optional[float] = None
    num_ratings: Optional[int] = None
    would_take_again_percent: Optional[float] = None


class NameMatchReport(BaseModel):
    name: str
    exact: List[OverlayMatch] = Field(default_factory=list)
    fallback_only: List[OverlayMatch] = Field(default_factory=list)


NAME_MATCH_SQL = """
    SELECT
        r.rating_id,
        r.full_name,
        r.avg_rating,
        r.avg_difficulty,
        r.num_ratings,
        r.would_take_again_percent
    FROM instructor_ratings r
    WHERE upper(regexp_replace(btrim(r.full_name), '\\s+', ' ', 'g')) = ANY(%s)
    ORDER BY r.rating_id;
"""


def find_name_matches(db, instructors: str) -> List[NameMatchReport]:
    """
    Look up overlay records for every name in a delimited instructor field,
    under both rules. Records that only match under the normalized rule land
    in `fallback_only`; they are never used for query results.
    """
    names = split_instructors(instructors)
    if not names:
        return []

    with db.cursor() as cur:
        cur.execute(NAME_MATCH_SQL, [sorted({normalize_name(n) for n in names})])
        rows = [dict(row) for row in cur.fetchall()]

    exact = match_ratings(names, rows, MatchMode.EXACT)
    loose = match_ratings(names, rows, MatchMode.NORMALIZED)

    reports = []
    for name in names:
        exact_ids = {r["rating_id"] for r in exact[name]}
        reports.append(NameMatchReport(
            name=name,
            exact=[OverlayMatch(**r) for r in exact[name]],
            fallback_only=[OverlayMatch(**r) for r in loose[name] if r["rating_id"] not in exact_ids],
        ))
    return reports
