from datetime import datetime, timezone

import pytest

from conftest import at
from queries import (
    assignment_status,
    field_equals,
    filter_records,
    group_into_modules,
    sort_records,
    text_search,
)
from schemas import Assessment, Content, Course, Enrollment, Submission


@pytest.fixture
def courses():
    return [
        Course(id="c1", title="A", category="design", description="Colour theory", created_at=at(1)),
        Course(id="c2", title="B", category="programming", description="Python basics", created_at=at(2)),
    ]


class TestFiltering:
    def test_category_filter_returns_exact_match(self, courses):
        result = filter_records(courses, field_equals("category", "design"))
        assert [c.id for c in result] == ["c1"]

    def test_wildcard_matches_everything(self, courses):
        assert filter_records(courses, field_equals("category", "all")) == courses
        assert filter_records(courses, field_equals("category", None)) == courses

    def test_text_search_is_case_insensitive_over_fields(self, courses):
        assert [c.id for c in filter_records(courses, text_search("PYTHON", "title", "description"))] == ["c2"]
        assert [c.id for c in filter_records(courses, text_search("b", "title"))] == ["c2"]

    def test_empty_query_matches_all(self, courses):
        assert filter_records(courses, text_search("  ", "title")) == courses
        assert filter_records(courses, text_search(None, "title")) == courses

    def test_text_search_tolerates_missing_fields(self, courses):
        assert filter_records(courses, text_search("x", "nonexistent")) == []

    def test_predicates_combine(self, courses):
        result = filter_records(
            courses, field_equals("category", "design"), text_search("python", "description")
        )
        assert result == []


class TestSorting:
    def test_newest_and_oldest_are_reverse_total_orders(self):
        enrollments = [
            Enrollment(id="e2", user_id="u", course_id="c", created_at=at(5)),
            Enrollment(id="e1", user_id="u", course_id="c", created_at=at(5)),
            Enrollment(id="e3", user_id="u", course_id="c", created_at=at(1)),
            Enrollment(id="e4", user_id="u", course_id="c"),
        ]
        newest = [e.id for e in sort_records(enrollments, "newest")]
        oldest = [e.id for e in sort_records(enrollments, "oldest")]

        assert newest == ["e2", "e1", "e3", "e4"]
        assert oldest == list(reversed(newest))

    def test_sort_is_independent_of_input_order(self):
        enrollments = [
            Enrollment(id=f"e{i}", user_id="u", course_id="c", created_at=at(i % 3)) for i in range(6)
        ]
        expected = [e.id for e in sort_records(enrollments, "newest")]
        assert [e.id for e in sort_records(list(reversed(enrollments)), "newest")] == expected

    def test_mixed_naive_and_aware_timestamps(self):
        records = [
            Enrollment(id="naive", user_id="u", course_id="c", created_at=datetime(2024, 1, 2)),
            Enrollment(id="aware", user_id="u", course_id="c", created_at=at(0)),
        ]
        assert [e.id for e in sort_records(records, "oldest")] == ["aware", "naive"]

    def test_title_orders(self, courses):
        courses.append(Course(id="c3", title="c", created_at=at(0)))
        assert [c.title for c in sort_records(courses, "a-z")] == ["A", "B", "c"]
        assert [c.title for c in sort_records(courses, "z-a")] == ["c", "B", "A"]

    def test_unknown_order_keeps_input(self, courses):
        assert sort_records(courses, "popular") == courses


class TestModules:
    def test_groups_items_under_headers_in_order(self):
        contents = [
            Content(id="m2", course_id="c", title="Second", type="module", order=1),
            Content(id="m1", course_id="c", title="First", type="module", order=0),
            Content(id="x2", course_id="c", module_id="m1", title="Reading", type="reading", order=1),
            Content(id="x1", course_id="c", module_id="m1", title="Intro", order=0),
            Content(id="x3", course_id="c", module_id="m2", title="Quiz", type="quiz", order=0),
        ]
        modules = group_into_modules(contents)

        assert [m.title for m in modules] == ["First", "Second"]
        assert [c.id for c in modules[0].contents] == ["x1", "x2"]
        assert [c.id for c in modules[1].contents] == ["x3"]

    def test_items_without_header_get_their_own_module(self):
        contents = [Content(id="x1", course_id="c", module_id="lost", title="Orphan")]
        modules = group_into_modules(contents)
        assert len(modules) == 1
        assert modules[0].id == "lost"
        assert modules[0].title == "lost"

    def test_items_without_module_are_left_out(self):
        assert group_into_modules([Content(id="x1", course_id="c", title="Loose")]) == []


class TestAssignmentStatus:
    @pytest.fixture
    def assessment(self):
        return Assessment(id="a1", course_id="c", title="Essay", due_date=at(60))

    def test_completed_once_submitted(self, assessment):
        submission = Submission(id="s1", user_id="u", assessment_id="a1")
        assert assignment_status(assessment, submission, at=at(120)) == "completed"

    def test_overdue_after_due_date(self, assessment):
        assert assignment_status(assessment, None, at=at(61)) == "overdue"

    def test_pending_before_due_date(self, assessment):
        assert assignment_status(assessment, None, at=at(59)) == "pending"

    def test_pending_without_due_date(self):
        assessment = Assessment(id="a2", course_id="c", title="Open")
        assert assignment_status(assessment, None, at=datetime.now(timezone.utc)) == "pending"
