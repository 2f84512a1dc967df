from unittest.mock import MagicMock

import pytest
from firebase_admin import firestore

import crud
from conftest import at, make_query, make_snapshot
from errors import MalformedDocumentError
from schemas import AuthorRef


def added_data(db: MagicMock) -> dict:
    """The document passed to the last `.add` call."""
    return db.collection.return_value.add.call_args.args[0]


def applied_filters(query: MagicMock):
    return [
        (c.kwargs["filter"].field_path, c.kwargs["filter"].op_string, c.kwargs["filter"].value)
        for c in query.where.call_args_list
    ]


@pytest.fixture
def writable_db(db):
    db.collection.return_value.add.return_value = (at(0), MagicMock(id="new-id"))
    return db


class TestEnrollments:
    def test_create_always_starts_active_with_no_progress(self, writable_db):
        enrollment_id = crud.create_enrollment(
            writable_db,
            {"userId": "u1", "courseId": "c1", "status": "completed", "progress": 80},
        )
        data = added_data(writable_db)

        assert enrollment_id == "new-id"
        writable_db.collection.assert_called_with("enrollments")
        assert data["status"] == "active"
        assert data["progress"] == 0
        assert data["userId"] == "u1"
        assert data["createdAt"] == data["updatedAt"]

    def test_filters_by_user_and_course(self, db):
        query = make_query([make_snapshot("e1", {"userId": "u1", "courseId": "c1"})])
        db.collection.return_value = query

        result = crud.get_enrollments(db, user_id="u1", course_id="c1", limit=1)

        assert [e.id for e in result] == ["e1"]
        assert applied_filters(query) == [("userId", "==", "u1"), ("courseId", "==", "c1")]
        query.limit.assert_called_once_with(1)


class TestCourses:
    def test_instructor_filter_uses_nested_id(self, db):
        query = make_query([])
        db.collection.return_value = query

        crud.get_courses(db, instructor_id="t1")

        assert applied_filters(query) == [("instructor.id", "==", "t1")]
        query.limit.assert_called_once_with(50)

    def test_missing_course_is_none(self, db):
        db.collection.return_value.document.return_value.get.return_value = make_snapshot(
            "c9", None, exists=False
        )
        assert crud.get_course(db, "c9") is None

    def test_malformed_course_raises(self, db):
        db.collection.return_value.document.return_value.get.return_value = make_snapshot(
            "c1", {"description": "no title"}
        )
        with pytest.raises(MalformedDocumentError) as excinfo:
            crud.get_course(db, "c1")
        assert excinfo.value.doc_id == "c1"

    def test_increment_enrollments_is_atomic(self, db):
        crud.increment_course_enrollments(db, "c1")
        update = db.collection.return_value.document.return_value.update.call_args.args[0]
        assert isinstance(update["enrollments"], firestore.Increment)


class TestLists:
    def test_malformed_documents_are_skipped(self, db):
        db.collection.return_value = make_query(
            [
                make_snapshot("u1", {"displayName": "Ann", "role": "admin"}),
                make_snapshot("u2", {"displayName": "Bad", "role": "superuser"}),
            ]
        )
        assert [u.id for u in crud.get_users(db)] == ["u1"]

    def test_contents_are_ordered_ascending(self, db):
        query = make_query([])
        db.collection.return_value = query

        crud.get_course_contents(db, "c1")

        query.order_by.assert_called_once_with("order", direction=firestore.Query.ASCENDING)
        query.limit.assert_called_once_with(100)

    def test_user_submissions_newest_first(self, db):
        query = make_query([])
        db.collection.return_value = query

        crud.get_user_submissions(db, "u1")

        query.order_by.assert_called_once_with("submittedAt", direction=firestore.Query.DESCENDING)

    def test_user_submissions_for_one_assessment_are_unordered(self, db):
        query = make_query([make_snapshot("s1", {"userId": "u1", "assessmentId": "a1"})])
        db.collection.return_value = query

        result = crud.get_user_submissions(db, "u1", "a1")

        assert result[0].assessment_id == "a1"
        assert applied_filters(query) == [("userId", "==", "u1"), ("assessmentId", "==", "a1")]
        query.order_by.assert_not_called()

    def test_messages_match_either_participant(self, db):
        query = make_query([])
        db.collection.return_value = query

        crud.get_user_messages(db, "u1")

        assert applied_filters(query) == [("participants", "array_contains", "u1")]


class TestWrites:
    def test_submission_starts_submitted(self, writable_db):
        crud.create_submission(writable_db, {"userId": "u1", "assessmentId": "a1", "status": "graded"})
        data = added_data(writable_db)
        assert data["status"] == "submitted"
        assert "submittedAt" in data

    def test_grading_stamps_status(self, db):
        crud.grade_submission(db, "s1", 90, "Good")
        update = db.collection.return_value.document.return_value.update.call_args.args[0]
        assert update["grade"] == 90
        assert update["feedback"] == "Good"
        assert update["status"] == "graded"
        assert "gradedAt" in update

    def test_new_messages_are_unread(self, writable_db):
        crud.send_message(writable_db, {"senderId": "u1", "participants": ["u1", "u2"], "body": "hi"})
        assert added_data(writable_db)["read"] is False

    def test_discussion_carries_author_and_server_timestamp(self, writable_db):
        author = AuthorRef(id="u1", name="Ann", avatar=None)

        crud.create_discussion(writable_db, "c1", author, "Hello")
        data = added_data(writable_db)

        assert data["author"] == {"id": "u1", "name": "Ann", "avatar": None}
        assert data["likes"] == 0
        assert data["courseId"] == "c1"
        assert data["createdAt"] is firestore.SERVER_TIMESTAMP

    def test_reply_goes_to_subcollection(self, db):
        replies = db.collection.return_value.document.return_value.collection.return_value
        replies.add.return_value = (at(0), MagicMock(id="r1"))

        reply_id = crud.create_reply(db, "d1", AuthorRef(id="u1"), "Me too")

        assert reply_id == "r1"
        db.collection.return_value.document.assert_called_with("d1")
        db.collection.return_value.document.return_value.collection.assert_called_with("replies")
        assert replies.add.call_args.args[0]["message"] == "Me too"
