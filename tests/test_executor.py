from conftest import FakeDatabase, course_row, section_row

from coursequery.executor import build_match_query, execute_plan, sections_sql
from coursequery.filters import parse_filters_to_plan


def _where_part(sql):
    """Everything from FROM courses c up to the ORDER BY / terminator."""
    start = sql.index("FROM courses c")
    end = sql.index("ORDER BY") if "ORDER BY" in sql else sql.index(";")
    return sql[start:end].strip()


class TestMatchQuery:

    def test_no_filters_touches_only_courses(self):
        match = build_match_query(parse_filters_to_plan({}))
        assert match.with_sql == ""
        assert match.from_sql.strip() == "FROM courses c"
        assert match.params == []

    def test_section_filter_joins_sections(self):
        match = build_match_query(parse_filters_to_plan({"status": "open"}))
        assert "LEFT JOIN sections s ON s.course_id = c.course_id" in match.from_sql
        assert "section_ratings" not in match.from_sql
        assert "WHERE s.status = %s" in match.from_sql

    def test_rating_filter_aggregates_in_cte(self):
        match = build_match_query(parse_filters_to_plan({"min_section_avg_rating": "4"}))
        assert match.with_sql.startswith("WITH")
        assert "instructor_set AS" in match.with_sql
        assert "section_ratings AS" in match.with_sql
        assert match.with_sql.index("instructor_set AS") < match.with_sql.index("section_ratings AS")
        assert "LEFT JOIN section_ratings sr ON sr.section_id = s.section_id" in match.from_sql

    def test_search_needs_instructor_cte_only(self):
        match = build_match_query(parse_filters_to_plan({"search_param": "Doe"}))
        assert "instructor_set AS" in match.with_sql
        assert "section_ratings" not in match.with_sql

    def test_grade_filter_joins_grades(self):
        match = build_match_query(parse_filters_to_plan({"min_cumulative_gpa": "3.5"}))
        assert "LEFT JOIN course_grades g" in match.from_sql
        assert "sections" not in match.from_sql

    def test_table_instructor_source(self):
        match = build_match_query(parse_filters_to_plan({"search_param": "Doe"}), "table")
        assert "FROM section_instructors si" in match.with_sql


class TestExecutePlan:

    def test_zero_ids_short_circuits(self):
        db = FakeDatabase([{"total_count": 0}], [])
        result = execute_plan(db, parse_filters_to_plan({"status": "OPEN"}))
        assert result.courses == []
        assert result.total_count == 0
        assert result.has_more is False
        assert len(db.executed) == 2

    def test_page_past_end_keeps_total(self):
        db = FakeDatabase([{"total_count": 3}], [])
        result = execute_plan(db, parse_filters_to_plan({"page": "5"}))
        assert result.courses == []
        assert result.total_count == 3
        assert result.has_more is False

    def test_huge_page_binds_offset_within_bigint(self):
        db = FakeDatabase([{"total_count": 3}], [])
        result = execute_plan(db, parse_filters_to_plan({"page": "99999999999999999999"}))
        _, ids_params = db.executed[1]
        limit, offset = ids_params[-2:]
        assert limit == 10
        assert 0 <= offset <= 2**63 - 1
        assert result.courses == []
        assert result.total_count == 3
        assert result.has_more is False

    def test_count_and_ids_share_joins_and_binds(self):
        db = FakeDatabase([{"total_count": 0}], [])
        plan = parse_filters_to_plan({
            "status": "open,closed",
            "min_section_avg_rating": "3.5",
            "humanities": "yes",
            "limit": "5",
            "page": "2",
        })
        execute_plan(db, plan)
        (count_stmt, count_params), (ids_stmt, ids_params) = db.executed
        assert "COUNT(DISTINCT c.course_id)" in count_stmt
        assert "SELECT DISTINCT c.course_id" in ids_stmt
        assert _where_part(count_stmt) == _where_part(ids_stmt)
        assert ids_params[:-2] == count_params
        assert ids_params[-2:] == [5, 5]

    def test_phase_two_binds_only_the_id_set(self):
        db = FakeDatabase(
            [{"total_count": 2}],
            [{"course_id": 1}, {"course_id": 2}],
            [course_row(1), course_row(2)],
            [
                section_row(10, 1, "Jane Doe", status="OPEN"),
                section_row(11, 1, "Jane Doe", status="CLOSED"),
                section_row(20, 2, "John Roe"),
            ],
        )
        result = execute_plan(db, parse_filters_to_plan({"status": "OPEN", "instruction_mode": "Online"}))
        course_stmt, course_params = db.executed[2]
        section_stmt, section_params = db.executed[3]
        assert course_params == [[1, 2]]
        assert section_params == [[1, 2], [1, 2]]
        assert "s.status = " not in section_stmt
        assert "instruction_mode = %s" not in section_stmt
        # the CLOSED section of a course admitted via its OPEN section is still shown
        assert [s.section_id for s in result.courses[0].sections] == [10, 11]

    def test_full_result(self):
        db = FakeDatabase(
            [{"total_count": 12}],
            [{"course_id": 1}],
            [course_row(1, humanities="H")],
            [
                section_row(10, 1, "Jane Doe", 1, {
                    "rating_id": 1, "avg_rating": 4.0, "avg_difficulty": 2.0,
                    "num_ratings": 10, "would_take_again_percent": 80.0,
                }),
                section_row(10, 1, "John Roe", 2, {
                    "rating_id": 2, "avg_rating": 2.0, "avg_difficulty": 4.0,
                    "num_ratings": 5, "would_take_again_percent": 20.0,
                }),
            ],
        )
        result = execute_plan(db, parse_filters_to_plan({"limit": "1"}))
        assert result.total_count == 12
        assert result.has_more is True
        summary = result.courses[0].sections[0].rating_summary
        assert summary.section_avg_rating == 3.33
        assert summary.section_avg_difficulty == 2.67
        assert summary.section_avg_would_take_again == 60.0
        assert summary.section_total_ratings == 15

    def test_statements_run_in_order(self):
        db = FakeDatabase([{"total_count": 1}], [{"course_id": 1}], [course_row(1)], [])
        execute_plan(db, parse_filters_to_plan({}))
        stmts = [sql for sql, _ in db.executed]
        assert "COUNT(DISTINCT" in stmts[0]
        assert "SELECT DISTINCT c.course_id" in stmts[1]
        assert "FROM courses c" in stmts[2] and "course_grades" in stmts[2]
        assert "FROM sections s" in stmts[3]

    def test_identical_requests_identical_payloads(self):
        def run():
            db = FakeDatabase(
                [{"total_count": 1}],
                [{"course_id": 1}],
                [course_row(1)],
                [section_row(10, 1, "Jane Doe"), section_row(11, 1, "Amy Bell")],
            )
            return execute_plan(db, parse_filters_to_plan({"status": "open"})).model_dump_json()

        assert run() == run()


class TestSectionsSql:

    def test_ratings_joined_exactly(self):
        sql = sections_sql()
        assert "LEFT JOIN instructor_ratings r ON btrim(r.full_name) = ist.instructor_name" in sql
        assert sql.count("%s") == 2

    def test_without_ratings(self):
        sql = sections_sql(include_ratings=False)
        assert "instructor_ratings" not in sql
        assert "NULL::integer AS rating_id" in sql
