"""
Admin screens: user management and enrollment management.
"""
import logging
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import Field

import crud
from auth import SessionContext, SessionProvider, get_session_provider, require_screen
from database import BACKEND_ERRORS, get_db
from queries import field_equals, filter_records, sort_records, text_search
from schemas import CamelModel, EnrollmentUpdate, UserCreate, UserProfile, UserUpdate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


class EnrollmentCreate(CamelModel):
    user_id: str = Field(..., description="Student uid")
    course_id: str = Field(..., description="Course to enroll in")


# ------------------------------------------------------------------------
# Users
# ------------------------------------------------------------------------

@router.get("/users")
def list_users(
    q: Optional[str] = None,
    role: str = "all",
    db=Depends(get_db),
    session: SessionContext = Depends(require_screen("users")),
):
    try:
        users = crud.get_users(db)
    except BACKEND_ERRORS:
        logger.exception("Error fetching users")
        users = []
    return {
        "items": filter_records(
            users, text_search(q, "display_name", "email"), field_equals("role", role)
        )
    }


@router.post("/users", status_code=201)
def create_user(
    req: UserCreate,
    provider: SessionProvider = Depends(get_session_provider),
    session: SessionContext = Depends(require_screen("users")),
):
    try:
        uid = provider.create_account(req.email, req.password, req.display_name, req.role)
    except BACKEND_ERRORS:
        logger.exception("Error creating user %s", req.email)
        raise HTTPException(status_code=503, detail="Could not create user")
    logger.info("Admin %s created user %s", session.uid, uid)
    return UserProfile(
        id=uid, display_name=req.display_name, email=req.email, role=req.role, status="active"
    )


@router.patch("/users/{uid}")
def update_user(
    uid: str,
    req: UserUpdate,
    db=Depends(get_db),
    session: SessionContext = Depends(require_screen("users")),
):
    try:
        user = crud.get_user(db, uid)
        if user is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
        changes = req.model_dump(exclude_unset=True)
        if changes:
            crud.update_user(db, uid, changes)
    except BACKEND_ERRORS:
        logger.exception("Error updating user %s", uid)
        raise HTTPException(status_code=503, detail="Could not update user")
    logger.info("Admin %s updated user %s: %s", session.uid, uid, changes)
    return user.model_copy(update=changes)


# ------------------------------------------------------------------------
# Enrollments
# ------------------------------------------------------------------------

@router.get("/enrollments")
def list_enrollments(
    q: Optional[str] = None,
    status_filter: str = Query("all", alias="status"),
    sort: Literal["newest", "oldest"] = "newest",
    db=Depends(get_db),
    session: SessionContext = Depends(require_screen("enrollments")),
):
    try:
        enrollments = crud.get_enrollments(db)
    except BACKEND_ERRORS:
        logger.exception("Error fetching enrollments")
        enrollments = []
    matching = filter_records(
        enrollments,
        text_search(q, "user_name", "user_email", "course_title"),
        field_equals("status", status_filter),
    )
    return {"items": sort_records(matching, sort)}


@router.post("/enrollments", status_code=201)
def create_enrollment(
    req: EnrollmentCreate,
    db=Depends(get_db),
    session: SessionContext = Depends(require_screen("enrollments")),
):
    try:
        user = crud.get_user(db, req.user_id)
        course = crud.get_course(db, req.course_id)
        if user is None or course is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User or course not found")
        if crud.get_enrollments(db, user_id=req.user_id, course_id=req.course_id, limit=1):
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Already enrolled")
        enrollment_id = crud.create_enrollment(
            db,
            {
                "userId": user.id,
                "courseId": course.id,
                "userName": user.display_name,
                "userEmail": user.email,
                "courseTitle": course.title,
            },
        )
        crud.increment_course_enrollments(db, course.id)
        enrollment = crud.get_enrollment(db, enrollment_id)
    except BACKEND_ERRORS:
        logger.exception("Error enrolling %s in %s", req.user_id, req.course_id)
        raise HTTPException(status_code=503, detail="Could not create enrollment")
    return enrollment


@router.patch("/enrollments/{enrollment_id}")
def update_enrollment(
    enrollment_id: str,
    req: EnrollmentUpdate,
    db=Depends(get_db),
    session: SessionContext = Depends(require_screen("enrollments")),
):
    try:
        enrollment = crud.get_enrollment(db, enrollment_id)
        if enrollment is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Enrollment not found")
        changes = req.model_dump(exclude_unset=True)
        if changes:
            crud.update_enrollment(db, enrollment_id, changes)
    except BACKEND_ERRORS:
        logger.exception("Error updating enrollment %s", enrollment_id)
        raise HTTPException(status_code=503, detail="Could not update enrollment")
    return enrollment.model_copy(update=changes)
