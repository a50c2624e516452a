from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class RatingSnapshot(BaseModel):
    avg_rating: Optional[float] = None
    avg_difficulty: Optional[float] = None
    num_ratings: Optional[int] = None
    would_take_again_percent: Optional[float] = None


class InstructorInfo(RatingSnapshot):
    """An instructor attached to a section; rating fields are null when unmatched."""

    name: str


class SectionRatingSummary(BaseModel):
    section_avg_rating: Optional[float] = None
    section_avg_difficulty: Optional[float] = None
    section_total_ratings: int = 0
    section_avg_would_take_again: Optional[float] = None


class SectionInfo(BaseModel):
    section_id: int
    course_id: int
    status: Optional[str] = None
    available_seats: Optional[int] = None
    waitlist_total: Optional[int] = None
    capacity: Optional[int] = None
    enrolled: Optional[int] = None
    meeting_time: Optional[str] = None
    location: Optional[str] = None
    instruction_mode: Optional[str] = None
    is_asynchronous: Optional[bool] = None

    instructors: List[InstructorInfo] = Field(default_factory=list)
    rating_summary: SectionRatingSummary = Field(default_factory=SectionRatingSummary)


class CourseInfo(BaseModel):
    course_id: int
    subject_code: Optional[str] = None
    course_designation: Optional[str] = None
    full_course_designation: Optional[str] = None
    minimum_credits: Optional[int] = None
    maximum_credits: Optional[int] = None
    level: Optional[str] = None

    # Breadth codes, e.g. humanities == "H"
    ethnic_studies: Optional[str] = None
    social_science: Optional[str] = None
    humanities: Optional[str] = None
    biological_science: Optional[str] = None
    physical_science: Optional[str] = None
    natural_science: Optional[str] = None
    literature: Optional[str] = None

    # From course_grades, matched on course_designation
    cumulative_gpa: Optional[float] = None
    most_recent_gpa: Optional[float] = None

    sections: List[SectionInfo] = Field(default_factory=list)


class QueryResult(BaseModel):
    courses: List[CourseInfo] = Field(default_factory=list)
    total_count: int = 0
    has_more: bool = False


class QueryResponse(BaseModel):
    data: List[CourseInfo] = Field(default_factory=list)
    count: int = 0
    total_count: int = 0
    has_more: bool = False
    filters_applied: Dict[str, Any] = Field(default_factory=dict)


class ErrorResponse(BaseModel):
    error: str
    details: Optional[str] = None


class HealthResponse(BaseModel):
    status: str
    database: str
