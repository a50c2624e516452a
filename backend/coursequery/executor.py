# executor.py
from typing import Any, List, NamedTuple

from .aggregator import rating_summary_cte
from .assembler import assemble
from .pagination import count_sql, page_bounds
from .query_plan import JOIN_GRADES, JOIN_INSTRUCTORS, JOIN_RATINGS, JOIN_SECTIONS, QueryPlan
from .resolver import MatchMode, instructor_set_cte, rating_join_condition
from .schemas import QueryResult

COURSE_SELECT = """
    SELECT
        c.course_id,
        c.subject_code,
        c.course_designation,
        c.full_course_designation,
        c.minimum_credits,
        c.maximum_credits,
        c.level,
        c.ethnic_studies,
        c.social_science,
        c.humanities,
        c.biological_science,
        c.physical_science,
        c.natural_science,
        c.literature,
        g.cumulative_gpa,
        g.most_recent_gpa
    FROM courses c
    LEFT JOIN course_grades g ON g.course_designation = c.course_designation
    WHERE c.course_id = ANY(%s)
    ORDER BY c.course_id;
"""

SECTION_COLUMNS = """
        s.section_id,
        s.course_id,
        s.status,
        s.available_seats,
        s.waitlist_total,
        s.capacity,
        s.enrolled,
        s.meeting_time,
        s.location,
        s.instruction_mode,
        s.is_asynchronous,
        ist.instructor_name,
        ist.position"""

RATING_COLUMNS = """
        r.rating_id,
        r.avg_rating,
        r.avg_difficulty,
        r.num_ratings,
        r.would_take_again_percent"""

NO_RATING_COLUMNS = """
        NULL::integer AS rating_id,
        NULL::numeric AS avg_rating,
        NULL::numeric AS avg_difficulty,
        NULL::integer AS num_ratings,
        NULL::numeric AS would_take_again_percent"""


class MatchQuery(NamedTuple):
    with_sql: str
    from_sql: str
    params: List[Any]


def build_match_query(plan: QueryPlan, instructor_source: str = "column") -> MatchQuery:
    """
    The WITH and FROM ... WHERE text that selects matching courses. Shared by
    the count and the id resolution so both see the same joins and binds.
    """
    joins = plan.required_joins()

    ctes: List[str] = []
    if joins & {JOIN_INSTRUCTORS, JOIN_RATINGS}:
        ctes.append(instructor_set_cte(instructor_source))
    if JOIN_RATINGS in joins:
        ctes.append(rating_summary_cte(MatchMode.EXACT))
    with_sql = f"WITH {','.join(ctes)}" if ctes else ""

    from_parts = ["FROM courses c"]
    if JOIN_GRADES in joins:
        from_parts.append("LEFT JOIN course_grades g ON g.course_designation = c.course_designation")
    if joins & {JOIN_SECTIONS, JOIN_INSTRUCTORS, JOIN_RATINGS}:
        from_parts.append("LEFT JOIN sections s ON s.course_id = c.course_id")
    if JOIN_RATINGS in joins:
        from_parts.append("LEFT JOIN section_ratings sr ON sr.section_id = s.section_id")

    where_sql, params = plan.where_sql()
    from_sql = "\n        ".join(from_parts + ([where_sql] if where_sql else []))
    return MatchQuery(with_sql=with_sql, from_sql=from_sql, params=params)


def ids_sql(match: MatchQuery) -> str:
    return f"""
        {match.with_sql}
        SELECT DISTINCT c.course_id
        {match.from_sql}
        ORDER BY c.course_id
        LIMIT %s OFFSET %s;
    """


def sections_sql(instructor_source: str = "column", include_ratings: bool = True) -> str:
    """Sections, instructors and exactly matched overlay records for a course id set (bound twice)."""
    if include_ratings:
        columns = SECTION_COLUMNS + "," + RATING_COLUMNS
        rating_join = f"LEFT JOIN instructor_ratings r ON {rating_join_condition(MatchMode.EXACT)}"
    else:
        columns = SECTION_COLUMNS + "," + NO_RATING_COLUMNS
        rating_join = ""
    order_by = "ist.position, r.num_ratings DESC NULLS LAST, r.rating_id" if include_ratings else "ist.position"
    return f"""
        WITH {instructor_set_cte(instructor_source, scoped=True)}
        SELECT{columns}
        FROM sections s
        LEFT JOIN instructor_set ist ON ist.section_id = s.section_id
        {rating_join}
        WHERE s.course_id = ANY(%s)
        ORDER BY s.course_id, s.section_id, {order_by};
    """


def execute_plan(db, plan: QueryPlan, instructor_source: str = "column") -> QueryResult:
    """
    Run a QueryPlan in four statements on one cursor:

      1. count distinct matching courses
      2. resolve the page of matching course ids
      3. fetch those courses (with grade fields)
      4. fetch all their sections, instructors and matched ratings

    Steps 3 and 4 are restricted only by the id set, so a course admitted by
    one qualifying section still lists every section it has. When step 2
    finds nothing, steps 3 and 4 are skipped.
    """
    match = build_match_query(plan, instructor_source)

    with db.cursor() as cur:
        cur.execute(count_sql(match.with_sql, match.from_sql), match.params)
        total_count = int(cur.fetchone()["total_count"])

        cur.execute(ids_sql(match), match.params + [plan.limit, plan.offset])
        course_ids = [row["course_id"] for row in cur.fetchall()]

        page = page_bounds(total_count, plan.limit, plan.offset)
        if not course_ids:
            return QueryResult(courses=[], total_count=page.total_count, has_more=page.has_more)

        cur.execute(COURSE_SELECT, [course_ids])
        course_rows = cur.fetchall()

        cur.execute(
            sections_sql(instructor_source, include_ratings=plan.needs_overlay_join),
            [course_ids, course_ids],
        )
        section_rows = cur.fetchall()

    courses = assemble(course_rows, section_rows)
    return QueryResult(courses=courses, total_count=page.total_count, has_more=page.has_more)
