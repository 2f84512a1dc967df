"""
Per-entity data access wrappers.

Every function takes the Firestore client first. Reads return parsed records
from `schemas`; writes take stored-form (camelCase) dicts and stamp the
timestamps the collection expects. Nothing here retries or coordinates
writers: the last write wins.
"""
from typing import Any, Dict, List, Optional

from firebase_admin import firestore

from database import (
    build_query,
    create_document,
    delete_document,
    get_document,
    get_documents,
    now,
    records_from_snapshots,
    set_document,
    update_document,
)
from schemas import (
    Announcement,
    Assessment,
    AuthorRef,
    Content,
    Course,
    Discussion,
    Enrollment,
    Message,
    Reply,
    Submission,
    UserProfile,
)


# ========================================================================
# Users  (collection: users, document id = auth uid)
# ========================================================================

def get_user(db, uid: str) -> Optional[UserProfile]:
    return get_document(db, UserProfile, uid)


def get_users(db, role: Optional[str] = None, limit: int = 50) -> List[UserProfile]:
    filters = [("role", "==", role)] if role else []
    return get_documents(db, UserProfile, filters, limit=limit)


def create_user_profile(db, uid: str, data: Dict[str, Any]) -> str:
    """Write the profile document for a freshly created auth user."""
    return set_document(db, UserProfile.collection, uid, {**data, "createdAt": now()})


def update_user(db, uid: str, data: Dict[str, Any]) -> str:
    return update_document(db, UserProfile.collection, uid, {**data, "updatedAt": now()})


# ========================================================================
# Courses  (collection: courses)
# ========================================================================

def get_course(db, course_id: str) -> Optional[Course]:
    return get_document(db, Course, course_id)


def get_courses(db, instructor_id: Optional[str] = None, limit: int = 50) -> List[Course]:
    """List courses, optionally only those taught by one instructor."""
    filters = [("instructor.id", "==", instructor_id)] if instructor_id else []
    return get_documents(db, Course, filters, limit=limit)


def create_course(db, data: Dict[str, Any]) -> str:
    stamp = now()
    return create_document(db, Course.collection, {**data, "createdAt": stamp, "updatedAt": stamp})


def update_course(db, course_id: str, data: Dict[str, Any]) -> str:
    return update_document(db, Course.collection, course_id, {**data, "updatedAt": now()})


def delete_course(db, course_id: str) -> str:
    # contents, enrollments and assessments of the course are left in place
    return delete_document(db, Course.collection, course_id)


def increment_course_enrollments(db, course_id: str) -> str:
    return update_document(
        db, Course.collection, course_id, {"enrollments": firestore.Increment(1)}
    )


# ========================================================================
# Enrollments  (collection: enrollments)
# ========================================================================

def get_enrollment(db, enrollment_id: str) -> Optional[Enrollment]:
    return get_document(db, Enrollment, enrollment_id)


def get_enrollments(
    db,
    user_id: Optional[str] = None,
    course_id: Optional[str] = None,
    limit: int = 50,
) -> List[Enrollment]:
    filters = []
    if user_id:
        filters.append(("userId", "==", user_id))
    if course_id:
        filters.append(("courseId", "==", course_id))
    return get_documents(db, Enrollment, filters, limit=limit)


def create_enrollment(db, data: Dict[str, Any]) -> str:
    """Create an enrollment. Status and progress always start at active / 0."""
    stamp = now()
    return create_document(
        db,
        Enrollment.collection,
        {
            **data,
            "status": "active",
            "progress": 0,
            "createdAt": stamp,
            "updatedAt": stamp,
        },
    )


def update_enrollment(db, enrollment_id: str, data: Dict[str, Any]) -> str:
    return update_document(
        db, Enrollment.collection, enrollment_id, {**data, "updatedAt": now()}
    )


# ========================================================================
# Contents  (collection: contents)
# ========================================================================

def get_content(db, content_id: str) -> Optional[Content]:
    return get_document(db, Content, content_id)


def get_course_contents(db, course_id: str, limit: int = 100) -> List[Content]:
    return get_documents(
        db, Content, [("courseId", "==", course_id)], order_by="order", limit=limit
    )


def create_content(db, data: Dict[str, Any]) -> str:
    stamp = now()
    return create_document(db, Content.collection, {**data, "createdAt": stamp, "updatedAt": stamp})


def update_content(db, content_id: str, data: Dict[str, Any]) -> str:
    return update_document(db, Content.collection, content_id, {**data, "updatedAt": now()})


def delete_content(db, content_id: str) -> str:
    return delete_document(db, Content.collection, content_id)


# ========================================================================
# Assessments  (collection: assessments)
# ========================================================================

def get_assessment(db, assessment_id: str) -> Optional[Assessment]:
    return get_document(db, Assessment, assessment_id)


def get_course_assessments(db, course_id: str, limit: int = 50) -> List[Assessment]:
    """Assessments of a course, soonest due first."""
    return get_documents(
        db, Assessment, [("courseId", "==", course_id)], order_by="dueDate", limit=limit
    )


def create_assessment(db, data: Dict[str, Any]) -> str:
    stamp = now()
    return create_document(
        db, Assessment.collection, {**data, "createdAt": stamp, "updatedAt": stamp}
    )


def update_assessment(db, assessment_id: str, data: Dict[str, Any]) -> str:
    return update_document(
        db, Assessment.collection, assessment_id, {**data, "updatedAt": now()}
    )


def delete_assessment(db, assessment_id: str) -> str:
    return delete_document(db, Assessment.collection, assessment_id)


# ========================================================================
# Submissions  (collection: submissions)
# ========================================================================

def get_submission(db, submission_id: str) -> Optional[Submission]:
    return get_document(db, Submission, submission_id)


def get_user_submissions(
    db, user_id: str, assessment_id: Optional[str] = None, limit: int = 50
) -> List[Submission]:
    """
    Submissions by one user, newest first. Narrowed to one assessment the
    result is unordered, which avoids needing a composite index.
    """
    if assessment_id:
        return get_documents(
            db,
            Submission,
            [("userId", "==", user_id), ("assessmentId", "==", assessment_id)],
            limit=limit,
        )
    return get_documents(
        db,
        Submission,
        [("userId", "==", user_id)],
        order_by="submittedAt",
        descending=True,
        limit=limit,
    )


def get_assessment_submissions(db, assessment_id: str, limit: int = 50) -> List[Submission]:
    return get_documents(
        db,
        Submission,
        [("assessmentId", "==", assessment_id)],
        order_by="submittedAt",
        descending=True,
        limit=limit,
    )


def create_submission(db, data: Dict[str, Any]) -> str:
    return create_document(
        db,
        Submission.collection,
        {**data, "status": "submitted", "submittedAt": now()},
    )


def grade_submission(
    db, submission_id: str, grade: float, feedback: Optional[str] = None
) -> str:
    return update_document(
        db,
        Submission.collection,
        submission_id,
        {"grade": grade, "feedback": feedback, "status": "graded", "gradedAt": now()},
    )


# ========================================================================
# Announcements  (collection: announcements)
# ========================================================================

def get_announcement(db, announcement_id: str) -> Optional[Announcement]:
    return get_document(db, Announcement, announcement_id)


def get_course_announcements(db, course_id: str, limit: int = 20) -> List[Announcement]:
    return get_documents(
        db,
        Announcement,
        [("courseId", "==", course_id)],
        order_by="createdAt",
        descending=True,
        limit=limit,
    )


def create_announcement(db, data: Dict[str, Any]) -> str:
    return create_document(db, Announcement.collection, {**data, "createdAt": now()})


def update_announcement(db, announcement_id: str, data: Dict[str, Any]) -> str:
    return update_document(
        db, Announcement.collection, announcement_id, {**data, "updatedAt": now()}
    )


def delete_announcement(db, announcement_id: str) -> str:
    return delete_document(db, Announcement.collection, announcement_id)


# ========================================================================
# Messages  (collection: messages)
# ========================================================================

def get_message(db, message_id: str) -> Optional[Message]:
    return get_document(db, Message, message_id)


def get_user_messages(db, user_id: str, limit: int = 50) -> List[Message]:
    """Messages the user sent or received, newest first."""
    return get_documents(
        db,
        Message,
        [("participants", "array_contains", user_id)],
        order_by="createdAt",
        descending=True,
        limit=limit,
    )


def send_message(db, data: Dict[str, Any]) -> str:
    return create_document(
        db, Message.collection, {**data, "createdAt": now(), "read": False}
    )


def mark_message_as_read(db, message_id: str) -> str:
    return update_document(
        db, Message.collection, message_id, {"read": True, "readAt": now()}
    )


# ========================================================================
# Discussions  (collection: discussions, sub-collection: replies)
# ========================================================================

def discussions_query(db, course_id: str):
    """Discussions of a course, newest first. Also used for live listening."""
    return build_query(
        db.collection(Discussion.collection),
        [("courseId", "==", course_id)],
        order_by="createdAt",
        descending=True,
    )


def replies_query(db, discussion_id: str):
    """Replies to one discussion, oldest first."""
    return build_query(
        db.collection(Discussion.collection)
        .document(discussion_id)
        .collection(Reply.collection),
        order_by="createdAt",
    )


def get_discussion(db, discussion_id: str) -> Optional[Discussion]:
    return get_document(db, Discussion, discussion_id)


def get_course_discussions(db, course_id: str) -> List[Discussion]:
    return records_from_snapshots(Discussion, discussions_query(db, course_id).stream())


def get_replies(db, discussion_id: str) -> List[Reply]:
    return records_from_snapshots(Reply, replies_query(db, discussion_id).stream())


def create_discussion(db, course_id: str, author: AuthorRef, message: str) -> str:
    return create_document(
        db,
        Discussion.collection,
        {
            "courseId": course_id,
            "author": author.model_dump(by_alias=True),
            "message": message,
            "createdAt": firestore.SERVER_TIMESTAMP,
            "likes": 0,
        },
    )


def create_reply(db, discussion_id: str, author: AuthorRef, message: str) -> str:
    _, doc_ref = (
        db.collection(Discussion.collection)
        .document(discussion_id)
        .collection(Reply.collection)
        .add(
            {
                "author": author.model_dump(by_alias=True),
                "message": message,
                "createdAt": firestore.SERVER_TIMESTAMP,
                "likes": 0,
            }
        )
    )
    return doc_ref.id


def like_discussion(db, discussion_id: str) -> str:
    return update_document(
        db, Discussion.collection, discussion_id, {"likes": firestore.Increment(1)}
    )
