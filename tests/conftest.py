from contextlib import contextmanager

import pytest


class FakeCursor:
    """Replays one scripted result set per execute() and records every statement."""

    def __init__(self, results):
        self._results = list(results)
        self._current = []
        self.executed = []

    def execute(self, sql, params=None):
        self.executed.append((sql, list(params or [])))
        self._current = self._results.pop(0) if self._results else []

    def fetchall(self):
        return list(self._current)

    def fetchone(self):
        return self._current[0] if self._current else None

    def close(self):
        pass


class FakeDatabase:
    def __init__(self, *results, error=None):
        self.cur = FakeCursor(results)
        self.error = error

    @contextmanager
    def cursor(self):
        if self.error is not None:
            raise self.error
        yield self.cur

    def ping(self):
        with self.cursor() as cur:
            cur.execute("SELECT 1;")
            cur.fetchone()

    @property
    def executed(self):
        return self.cur.executed


def course_row(course_id, **overrides):
    row = {
        "course_id": course_id,
        "subject_code": "COMP SCI",
        "course_designation": f"COMP SCI {course_id}",
        "full_course_designation": f"COMPUTER SCIENCES {course_id}",
        "minimum_credits": 3,
        "maximum_credits": 3,
        "level": "I",
        "ethnic_studies": None,
        "social_science": None,
        "humanities": None,
        "biological_science": None,
        "physical_science": None,
        "natural_science": None,
        "literature": None,
        "cumulative_gpa": None,
        "most_recent_gpa": None,
    }
    row.update(overrides)
    return row


def section_row(section_id, course_id, instructor_name=None, position=1, rating=None, **overrides):
    """One joined (section, instructor, overlay record) row. `rating` is a dict with rating_id etc."""
    row = {
        "section_id": section_id,
        "course_id": course_id,
        "status": "OPEN",
        "available_seats": 10,
        "waitlist_total": 0,
        "capacity": 40,
        "enrolled": 30,
        "meeting_time": "MWF 09:55",
        "location": "Room 1240",
        "instruction_mode": "In Person",
        "is_asynchronous": False,
        "instructor_name": instructor_name,
        "position": position if instructor_name else None,
        "rating_id": None,
        "avg_rating": None,
        "avg_difficulty": None,
        "num_ratings": None,
        "would_take_again_percent": None,
    }
    if rating:
        row.update(rating)
    row.update(overrides)
    return row


@pytest.fixture
def make_db():
    return FakeDatabase
