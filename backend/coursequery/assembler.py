# assembler.py
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .aggregator import summarize_ratings
from .schemas import CourseInfo, InstructorInfo, RatingSnapshot, SectionInfo

COURSE_FIELDS = (
    "course_id",
    "subject_code",
    "course_designation",
    "full_course_designation",
    "minimum_credits",
    "maximum_credits",
    "level",
    "ethnic_studies",
    "social_science",
    "humanities",
    "biological_science",
    "physical_science",
    "natural_science",
    "literature",
)

SECTION_FIELDS = (
    "section_id",
    "course_id",
    "status",
    "available_seats",
    "waitlist_total",
    "capacity",
    "enrolled",
    "meeting_time",
    "location",
    "instruction_mode",
    "is_asynchronous",
)


def decimal_to_float(val: Any) -> Optional[float]:
    if val is None:
        return None
    if isinstance(val, Decimal):
        return float(val)
    return float(val)


def row_to_course(row: Mapping[str, Any]) -> CourseInfo:
    return CourseInfo(
        **{k: row.get(k) for k in COURSE_FIELDS},
        cumulative_gpa=decimal_to_float(row.get("cumulative_gpa")),
        most_recent_gpa=decimal_to_float(row.get("most_recent_gpa")),
    )


def row_to_rating(row: Mapping[str, Any]) -> Optional[RatingSnapshot]:
    """The overlay record carried by a joined row, or None when the row has no match."""
    if row.get("rating_id") is None:
        return None
    return RatingSnapshot(
        avg_rating=decimal_to_float(row.get("avg_rating")),
        avg_difficulty=decimal_to_float(row.get("avg_difficulty")),
        num_ratings=row.get("num_ratings"),
        would_take_again_percent=decimal_to_float(row.get("would_take_again_percent")),
    )


def _section_order_key(section: SectionInfo):
    names = [i.name for i in section.instructors]
    first = min(names) if names else None
    return (first is None, first or "", section.section_id)


def sort_sections(sections: List[SectionInfo]) -> List[SectionInfo]:
    """Status descending (null last), then instructor name ascending, then section id."""
    ordered = sorted(sections, key=_section_order_key)
    # sorted() is stable, so the second pass keeps the name order within a status.
    return sorted(ordered, key=lambda s: s.status or "", reverse=True)


def assemble(
    course_rows: Iterable[Mapping[str, Any]],
    section_rows: Iterable[Mapping[str, Any]],
) -> List[CourseInfo]:
    """
    Fold flat course rows and (section x instructor x overlay record) rows into
    the nested result. A section appears once however many joined rows it
    produced; instructors are unique by name, and the summary counts each
    overlay record once.
    """
    courses: Dict[int, CourseInfo] = {}
    for row in course_rows:
        if row["course_id"] not in courses:
            courses[row["course_id"]] = row_to_course(row)

    sections: Dict[int, SectionInfo] = {}
    positions: Dict[int, Dict[str, Any]] = {}
    records: Dict[int, Dict[Any, RatingSnapshot]] = {}

    for row in section_rows:
        sid = row["section_id"]
        section = sections.get(sid)
        if section is None:
            section = SectionInfo(**{k: row.get(k) for k in SECTION_FIELDS})
            sections[sid] = section
            positions[sid] = {}
            records[sid] = {}

        rating = row_to_rating(row)
        if rating is not None:
            records[sid].setdefault(row["rating_id"], rating)

        name = (row.get("instructor_name") or "").strip()
        if not name or name in positions[sid]:
            continue
        positions[sid][name] = row.get("position")
        if rating is not None:
            section.instructors.append(InstructorInfo(
                name=name,
                avg_rating=rating.avg_rating,
                avg_difficulty=rating.avg_difficulty,
                num_ratings=rating.num_ratings,
                would_take_again_percent=rating.would_take_again_percent,
            ))
        else:
            section.instructors.append(InstructorInfo(name=name))

    for sid, section in sections.items():
        order = positions[sid]
        section.instructors.sort(
            key=lambda i: (order.get(i.name) is None, order.get(i.name) or 0, i.name)
        )
        section.rating_summary = summarize_ratings(records[sid].values())
        course = courses.get(section.course_id)
        if course is not None:
            course.sections.append(section)

    result = [courses[cid] for cid in sorted(courses)]
    for course in result:
        course.sections = sort_sections(course.sections)
    return result
