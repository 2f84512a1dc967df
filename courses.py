"""
Course catalog, course detail, course creation/management and enrollment.
"""
import logging
from typing import Literal, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status

import crud
import storage
from auth import (
    ACCESS_DENIED,
    SessionContext,
    can_manage_course,
    require_screen,
    require_session,
)
from database import BACKEND_ERRORS, get_bucket, get_db
from queries import field_equals, filter_records, group_into_modules, sort_records, text_search
from schemas import Course, CourseUpdate, parse_document

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/courses", tags=["courses"])

SortOrder = Literal["newest", "oldest", "a-z", "z-a"]


def load_course(db, course_id: str) -> Course:
    try:
        course = crud.get_course(db, course_id)
    except BACKEND_ERRORS:
        logger.exception("Error fetching course %s", course_id)
        raise HTTPException(status_code=503, detail="Could not load course")
    if course is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Course not found")
    return course


def require_manager(db, session: SessionContext, course_id: str) -> Course:
    """Load a course the session may manage, or refuse."""
    course = load_course(db, course_id)
    if not can_manage_course(session, course):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=ACCESS_DENIED)
    return course


def is_enrolled(db, session: SessionContext, course_id: str) -> bool:
    return bool(crud.get_enrollments(db, user_id=session.uid, course_id=course_id, limit=1))


@router.get("")
def list_courses(
    q: Optional[str] = None,
    category: str = "all",
    sort: SortOrder = "newest",
    db=Depends(get_db),
    session: SessionContext = Depends(require_session),
):
    # instructors only see the courses they teach
    instructor_id = session.uid if session.role == "instructor" else None
    try:
        courses = crud.get_courses(db, instructor_id=instructor_id)
    except BACKEND_ERRORS:
        logger.exception("Error fetching courses")
        courses = []

    matching = filter_records(
        courses,
        field_equals("category", category),
        text_search(q, "title", "description"),
    )
    return {"items": sort_records(matching, sort)}


@router.post("", status_code=201)
def create_course(
    title: str = Form(...),
    description: str = Form(""),
    category: str = Form(""),
    level: str = Form(""),
    thumbnail: Optional[UploadFile] = File(None),
    db=Depends(get_db),
    bucket=Depends(get_bucket),
    session: SessionContext = Depends(require_screen("course:create")),
):
    if not title.strip():
        raise HTTPException(status_code=400, detail="Title is required")

    data = {
        "title": title.strip(),
        "description": description,
        "category": category,
        "level": level,
        "image": "",
        "instructor": {"id": session.uid, "name": session.profile.display_name},
        "enrollments": 0,
        "status": "published",
    }
    try:
        if thumbnail is not None and thumbnail.filename:
            data["image"] = storage.upload_course_thumbnail(
                bucket, thumbnail.file, thumbnail.filename, thumbnail.content_type
            )
        course_id = crud.create_course(db, data)
    except BACKEND_ERRORS:
        logger.exception("Error creating course")
        raise HTTPException(status_code=503, detail="Could not create course")

    logger.info("Course %s created by %s", course_id, session.uid)
    return parse_document(Course, course_id, data)


@router.get("/{course_id}")
def course_detail(course_id: str, db=Depends(get_db), session: SessionContext = Depends(require_session)):
    course = load_course(db, course_id)
    try:
        contents = crud.get_course_contents(db, course_id)
        enrollments = crud.get_enrollments(db, user_id=session.uid, course_id=course_id, limit=1)
    except BACKEND_ERRORS:
        logger.exception("Error fetching course data for %s", course_id)
        contents, enrollments = [], []

    enrollment = enrollments[0] if enrollments else None
    return {
        "course": course,
        "modules": group_into_modules(contents),
        "enrollment": enrollment,
        "isEnrolled": enrollment is not None,
        "canManage": can_manage_course(session, course),
    }


@router.patch("/{course_id}")
def update_course(course_id: str, req: CourseUpdate, db=Depends(get_db),
                  session: SessionContext = Depends(require_session)):
    course = require_manager(db, session, course_id)
    changes = req.model_dump(exclude_unset=True)
    if not changes:
        return course
    try:
        crud.update_course(db, course_id, req.model_dump(by_alias=True, exclude_unset=True))
    except BACKEND_ERRORS:
        logger.exception("Error updating course %s", course_id)
        raise HTTPException(status_code=503, detail="Could not update course")
    return course.model_copy(update=changes)


@router.delete("/{course_id}")
def delete_course(course_id: str, db=Depends(get_db), session: SessionContext = Depends(require_session)):
    require_manager(db, session, course_id)
    try:
        crud.delete_course(db, course_id)
    except BACKEND_ERRORS:
        logger.exception("Error deleting course %s", course_id)
        raise HTTPException(status_code=503, detail="Could not delete course")
    logger.info("Course %s deleted by %s", course_id, session.uid)
    return {"id": course_id}


@router.post("/{course_id}/enroll")
def enroll(course_id: str, db=Depends(get_db), session: SessionContext = Depends(require_session)):
    if session.profile is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=ACCESS_DENIED)
    course = load_course(db, course_id)
    try:
        existing = crud.get_enrollments(db, user_id=session.uid, course_id=course_id, limit=1)
        if existing:
            return {"status": "already_enrolled", "enrollment": existing[0]}

        enrollment_id = crud.create_enrollment(
            db,
            {
                "userId": session.uid,
                "courseId": course_id,
                "userName": session.profile.display_name,
                "userEmail": session.profile.email,
                "courseTitle": course.title,
            },
        )
        crud.increment_course_enrollments(db, course_id)
        enrollment = crud.get_enrollment(db, enrollment_id)
    except BACKEND_ERRORS:
        logger.exception("Error enrolling in course %s", course_id)
        raise HTTPException(status_code=503, detail="Could not enroll in course")

    logger.info("%s enrolled in course %s", session.uid, course_id)
    return {"status": "enrolled", "enrollment": enrollment}
