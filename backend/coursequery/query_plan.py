# query_plan.py
from typing import Any, Dict, List, Literal, Set, Tuple

from pydantic import BaseModel, Field

Tier = Literal["course", "section", "overlay"]

# Relations a predicate needs joined onto `courses c` in the match query.
JOIN_GRADES = "grades"            # course_grades g
JOIN_SECTIONS = "sections"        # sections s
JOIN_INSTRUCTORS = "instructors"  # instructor_set CTE (via s)
JOIN_RATINGS = "ratings"          # section_ratings sr (via s)


class Predicate(BaseModel):
    tier: Tier
    clause: str  # fixed SQL template, %s placeholders only
    params: List[Any] = Field(default_factory=list)
    joins: List[str] = Field(default_factory=list)


class QueryPlan(BaseModel):
    course_tier: List[Predicate] = Field(default_factory=list)
    section_tier: List[Predicate] = Field(default_factory=list)
    overlay_tier: List[Predicate] = Field(default_factory=list)

    # Whether rating overlay fields are wanted in the output. Rating filters
    # pull the overlay in regardless.
    include_ratings: bool = True

    limit: int = 10
    page: int = 1

    # Normalized recognized parameters, echoed back to the client.
    filters_applied: Dict[str, Any] = Field(default_factory=dict)

    def add(self, predicate: Predicate) -> None:
        if predicate.tier == "course":
            self.course_tier.append(predicate)
        elif predicate.tier == "section":
            self.section_tier.append(predicate)
        else:
            self.overlay_tier.append(predicate)

    @property
    def predicates(self) -> List[Predicate]:
        return self.course_tier + self.section_tier + self.overlay_tier

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    @property
    def needs_overlay_join(self) -> bool:
        return bool(self.overlay_tier) or self.include_ratings

    def required_joins(self) -> Set[str]:
        joins: Set[str] = set()
        for p in self.predicates:
            joins.update(p.joins)
        return joins

    def where_sql(self) -> Tuple[str, List[Any]]:
        clauses: List[str] = []
        params: List[Any] = []
        for p in self.predicates:
            clauses.append(p.clause)
            params.extend(p.params)
        where_sql = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        return where_sql, params
