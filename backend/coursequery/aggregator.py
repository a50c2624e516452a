# aggregator.py
"""
Section-level rating summaries.

Each matched overlay record stands for `num_ratings` independent ratings
(weight 1 when the count is missing or not positive), so a heavily rated
instructor outweighs a lightly rated co-instructor in the section average.

summarize_ratings() produces the summaries returned to clients;
rating_summary_cte() is the same formula in SQL, used when a request filters
on section summary thresholds. Both round half away from zero to 2 places.
"""
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable, Optional

from .resolver import MatchMode, rating_join_condition
from .schemas import RatingSnapshot, SectionRatingSummary

_TWO_PLACES = Decimal("0.01")


def _to_decimal(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def rating_weight(num_ratings: Any) -> int:
    if num_ratings is not None and num_ratings > 0:
        return int(num_ratings)
    return 1


def _round(value: Decimal) -> float:
    return float(value.quantize(_TWO_PLACES, rounding=ROUND_HALF_UP))


def weighted_average(records: Iterable[RatingSnapshot], field: str) -> Optional[float]:
    total = Decimal(0)
    weights = 0
    for r in records:
        value = _to_decimal(getattr(r, field))
        if value is None:
            continue
        w = rating_weight(r.num_ratings)
        total += value * w
        weights += w
    if weights == 0:
        return None
    return _round(total / weights)


def summarize_ratings(records: Iterable[RatingSnapshot]) -> SectionRatingSummary:
    records = list(records)
    if not records:
        return SectionRatingSummary()
    return SectionRatingSummary(
        section_avg_rating=weighted_average(records, "avg_rating"),
        section_avg_difficulty=weighted_average(records, "avg_difficulty"),
        section_total_ratings=sum(
            rating_weight(r.num_ratings) for r in records if r.avg_rating is not None
        ),
        section_avg_would_take_again=weighted_average(records, "would_take_again_percent"),
    )


def _weighted_avg_sql(column: str) -> str:
    return (
        f"ROUND((SUM(m.{column} * m.weight) FILTER (WHERE m.{column} IS NOT NULL)"
        f" / NULLIF(SUM(m.weight) FILTER (WHERE m.{column} IS NOT NULL), 0))::numeric, 2)"
    )


def rating_summary_cte(mode: MatchMode = MatchMode.EXACT) -> str:
    """
    CTE body `section_ratings(section_id, section_avg_rating, ...)`. It reads
    the `instructor_set` CTE, which must be declared before it. Sections with
    no matched overlay record have no row here.
    """
    return f"""
    section_ratings AS (
        SELECT
            m.section_id,
            {_weighted_avg_sql("avg_rating")} AS section_avg_rating,
            {_weighted_avg_sql("avg_difficulty")} AS section_avg_difficulty,
            COALESCE(SUM(m.weight) FILTER (WHERE m.avg_rating IS NOT NULL), 0) AS section_total_ratings,
            {_weighted_avg_sql("would_take_again_percent")} AS section_avg_would_take_again
        FROM (
            SELECT DISTINCT
                ist.section_id,
                r.rating_id,
                r.avg_rating,
                r.avg_difficulty,
                r.would_take_again_percent,
                CASE WHEN r.num_ratings > 0 THEN r.num_ratings ELSE 1 END AS weight
            FROM instructor_set ist
            JOIN instructor_ratings r ON {rating_join_condition(mode)}
        ) m
        GROUP BY m.section_id
    )"""
