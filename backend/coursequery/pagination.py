# pagination.py
from typing import NamedTuple


class PageInfo(NamedTuple):
    total_count: int
    has_more: bool


def count_sql(with_sql: str, from_sql: str) -> str:
    """
    Count distinct matching courses. Takes the same WITH and FROM/WHERE text
    used to resolve ids, so joins to sections or ratings never inflate it and
    the total always agrees with what the id query can return.
    """
    return f"""
        {with_sql}
        SELECT COUNT(DISTINCT c.course_id) AS total_count
        {from_sql};
    """


def page_bounds(total_count: int, limit: int, offset: int) -> PageInfo:
    return PageInfo(total_count=total_count, has_more=(offset + limit) < total_count)
