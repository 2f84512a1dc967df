"""
Course modules and contents, assignments with their submissions, and
announcements. Managing routes are open to the course's instructor and to
admins; students read what they are enrolled in and submit their work.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status

import crud
import storage
from auth import SessionContext, require_session
from courses import is_enrolled, require_manager
from database import BACKEND_ERRORS, get_bucket, get_db
from queries import CourseModule, assignment_status, group_into_modules
from schemas import (
    AnnouncementCreate,
    AnnouncementUpdate,
    Assessment,
    AssessmentCreate,
    AssessmentUpdate,
    Content,
    ContentType,
    ContentUpdate,
    GradeRequest,
    ModuleCreate,
    Submission,
    parse_document,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["coursework"])


class AssignmentView(Assessment):
    """An assessment as one student sees it."""

    status: str = "pending"
    submission: Optional[Submission] = None


def assignment_view(assessment: Assessment, submission: Optional[Submission]) -> AssignmentView:
    data = assessment.model_dump()
    data.update(status=assignment_status(assessment, submission), submission=submission)
    return AssignmentView.model_validate(data)


def _unavailable(action: str) -> HTTPException:
    return HTTPException(status_code=503, detail=f"Could not {action}")


def _load(loader, db, doc_id: str, name: str):
    try:
        record = loader(db, doc_id)
    except BACKEND_ERRORS:
        logger.exception("Error fetching %s %s", name, doc_id)
        raise _unavailable(f"load {name}")
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{name.capitalize()} not found")
    return record


# ------------------------------------------------------------------------
# Modules and contents
# ------------------------------------------------------------------------

@router.get("/courses/{course_id}/modules")
def list_modules(course_id: str, db=Depends(get_db), session: SessionContext = Depends(require_session)):
    try:
        contents = crud.get_course_contents(db, course_id)
    except BACKEND_ERRORS:
        logger.exception("Error fetching contents for %s", course_id)
        contents = []
    return {"items": group_into_modules(contents)}


@router.post("/courses/{course_id}/modules", status_code=201)
def add_module(course_id: str, req: ModuleCreate, db=Depends(get_db),
               session: SessionContext = Depends(require_session)):
    require_manager(db, session, course_id)
    try:
        contents = crud.get_course_contents(db, course_id)
        order = sum(1 for content in contents if content.type == "module")
        module_id = crud.create_content(
            db, {"courseId": course_id, "title": req.title, "type": "module", "order": order}
        )
    except BACKEND_ERRORS:
        logger.exception("Error adding module to %s", course_id)
        raise _unavailable("add module")
    return CourseModule(id=module_id, title=req.title, order=order)


@router.post("/courses/{course_id}/contents", status_code=201)
def add_content(
    course_id: str,
    module_id: str = Form(..., alias="moduleId"),
    title: str = Form(...),
    content_type: ContentType = Form("video", alias="type"),
    duration: str = Form(""),
    description: str = Form(""),
    file: Optional[UploadFile] = File(None),
    db=Depends(get_db),
    bucket=Depends(get_bucket),
    session: SessionContext = Depends(require_session),
):
    require_manager(db, session, course_id)
    if content_type == "module":
        raise HTTPException(status_code=400, detail="Use the modules route to add a module")

    try:
        modules = group_into_modules(crud.get_course_contents(db, course_id))
        module = next((m for m in modules if m.id == module_id), None)
        if module is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Module not found")

        data = {
            "courseId": course_id,
            "moduleId": module_id,
            "title": title,
            "type": content_type,
            "duration": duration,
            "description": description,
            "url": "",
            "order": len(module.contents),
            "locked": False,
        }
        if file is not None and file.filename:
            data["url"] = storage.upload_course_material(
                bucket, course_id, file.file, file.filename,
                title=title, content_type=file.content_type,
            )
        content_id = crud.create_content(db, data)
    except BACKEND_ERRORS:
        logger.exception("Error adding content to %s", course_id)
        raise _unavailable("add content")
    return parse_document(Content, content_id, data)


@router.patch("/contents/{content_id}")
def update_content(content_id: str, req: ContentUpdate, db=Depends(get_db),
                   session: SessionContext = Depends(require_session)):
    content = _load(crud.get_content, db, content_id, "content")
    require_manager(db, session, content.course_id)
    changes = req.model_dump(exclude_unset=True)
    try:
        crud.update_content(db, content_id, req.model_dump(by_alias=True, exclude_unset=True))
    except BACKEND_ERRORS:
        logger.exception("Error updating content %s", content_id)
        raise _unavailable("update content")
    return content.model_copy(update=changes)


@router.delete("/contents/{content_id}")
def delete_content(content_id: str, db=Depends(get_db), bucket=Depends(get_bucket),
                   session: SessionContext = Depends(require_session)):
    content = _load(crud.get_content, db, content_id, "content")
    require_manager(db, session, content.course_id)
    try:
        crud.delete_content(db, content_id)
        if content.url:
            storage.delete_file_at_url(bucket, content.url)
    except BACKEND_ERRORS:
        logger.exception("Error deleting content %s", content_id)
        raise _unavailable("delete content")
    return {"id": content_id}


# ------------------------------------------------------------------------
# Assignments and submissions
# ------------------------------------------------------------------------

@router.get("/courses/{course_id}/assignments")
def list_assignments(course_id: str, db=Depends(get_db), session: SessionContext = Depends(require_session)):
    try:
        assessments = crud.get_course_assessments(db, course_id)
        enrolled = is_enrolled(db, session, course_id)
        items = []
        for assessment in assessments:
            submission = None
            if enrolled:
                submissions = crud.get_user_submissions(db, session.uid, assessment.id, limit=1)
                submission = submissions[0] if submissions else None
            items.append(assignment_view(assessment, submission))
    except BACKEND_ERRORS:
        logger.exception("Error fetching assignments for %s", course_id)
        items = []
    return {"items": items}


@router.post("/courses/{course_id}/assignments", status_code=201)
def create_assignment(course_id: str, req: AssessmentCreate, db=Depends(get_db),
                      session: SessionContext = Depends(require_session)):
    require_manager(db, session, course_id)
    data = {"courseId": course_id, "type": "assignment", **req.model_dump(by_alias=True)}
    try:
        assessment_id = crud.create_assessment(db, data)
    except BACKEND_ERRORS:
        logger.exception("Error creating assignment for %s", course_id)
        raise _unavailable("create assignment")
    assessment = parse_document(Assessment, assessment_id, data)
    return assignment_view(assessment, None)


@router.patch("/assignments/{assessment_id}")
def update_assignment(assessment_id: str, req: AssessmentUpdate, db=Depends(get_db),
                      session: SessionContext = Depends(require_session)):
    assessment = _load(crud.get_assessment, db, assessment_id, "assignment")
    require_manager(db, session, assessment.course_id)
    try:
        crud.update_assessment(db, assessment_id, req.model_dump(by_alias=True, exclude_unset=True))
    except BACKEND_ERRORS:
        logger.exception("Error updating assignment %s", assessment_id)
        raise _unavailable("update assignment")
    return assessment.model_copy(update=req.model_dump(exclude_unset=True))


@router.delete("/assignments/{assessment_id}")
def delete_assignment(assessment_id: str, db=Depends(get_db),
                      session: SessionContext = Depends(require_session)):
    assessment = _load(crud.get_assessment, db, assessment_id, "assignment")
    require_manager(db, session, assessment.course_id)
    try:
        crud.delete_assessment(db, assessment_id)
    except BACKEND_ERRORS:
        logger.exception("Error deleting assignment %s", assessment_id)
        raise _unavailable("delete assignment")
    return {"id": assessment_id}


@router.post("/assignments/{assessment_id}/submissions", status_code=201)
def submit_assignment(
    assessment_id: str,
    file: UploadFile = File(...),
    db=Depends(get_db),
    bucket=Depends(get_bucket),
    session: SessionContext = Depends(require_session),
):
    assessment = _load(crud.get_assessment, db, assessment_id, "assignment")
    try:
        enrolled = is_enrolled(db, session, assessment.course_id)
    except BACKEND_ERRORS:
        logger.exception("Error checking enrollment for %s", assessment.course_id)
        raise _unavailable("submit assignment")
    if not enrolled:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Enroll to submit this assignment")

    try:
        file_url = storage.upload_submission(
            bucket, assessment.course_id, assessment_id, session.uid,
            file.file, file.filename, content_type=file.content_type,
        )
        data = {
            "userId": session.uid,
            "courseId": assessment.course_id,
            "assessmentId": assessment_id,
            "fileUrl": file_url,
            "fileName": file.filename,
        }
        submission_id = crud.create_submission(db, data)
    except BACKEND_ERRORS:
        logger.exception("Error submitting assignment %s", assessment_id)
        raise _unavailable("submit assignment")

    logger.info("%s submitted assignment %s", session.uid, assessment_id)
    return parse_document(Submission, submission_id, {**data, "status": "submitted"})


@router.get("/assignments/{assessment_id}/submissions")
def list_submissions(assessment_id: str, db=Depends(get_db),
                     session: SessionContext = Depends(require_session)):
    assessment = _load(crud.get_assessment, db, assessment_id, "assignment")
    require_manager(db, session, assessment.course_id)
    try:
        submissions = crud.get_assessment_submissions(db, assessment_id)
    except BACKEND_ERRORS:
        logger.exception("Error fetching submissions for %s", assessment_id)
        submissions = []
    return {"items": submissions}


@router.post("/submissions/{submission_id}/grade")
def grade_submission(submission_id: str, req: GradeRequest, db=Depends(get_db),
                     session: SessionContext = Depends(require_session)):
    submission = _load(crud.get_submission, db, submission_id, "submission")
    assessment = _load(crud.get_assessment, db, submission.assessment_id, "assignment")
    require_manager(db, session, assessment.course_id)
    if req.grade > assessment.points:
        raise HTTPException(status_code=400, detail=f"Grade exceeds {assessment.points} points")
    try:
        crud.grade_submission(db, submission_id, req.grade, req.feedback)
    except BACKEND_ERRORS:
        logger.exception("Error grading submission %s", submission_id)
        raise _unavailable("grade submission")
    return submission.model_copy(
        update={"grade": req.grade, "feedback": req.feedback, "status": "graded"}
    )


# ------------------------------------------------------------------------
# Announcements
# ------------------------------------------------------------------------

@router.get("/courses/{course_id}/announcements")
def list_announcements(course_id: str, db=Depends(get_db),
                       session: SessionContext = Depends(require_session)):
    try:
        announcements = crud.get_course_announcements(db, course_id)
    except BACKEND_ERRORS:
        logger.exception("Error fetching announcements for %s", course_id)
        announcements = []
    return {"items": announcements}


@router.post("/courses/{course_id}/announcements", status_code=201)
def create_announcement(course_id: str, req: AnnouncementCreate, db=Depends(get_db),
                        session: SessionContext = Depends(require_session)):
    require_manager(db, session, course_id)
    data = {
        "courseId": course_id,
        "title": req.title,
        "message": req.message,
        "author": session.author().model_dump(by_alias=True),
    }
    try:
        announcement_id = crud.create_announcement(db, data)
    except BACKEND_ERRORS:
        logger.exception("Error creating announcement for %s", course_id)
        raise _unavailable("create announcement")
    return {"id": announcement_id}


@router.patch("/announcements/{announcement_id}")
def update_announcement(announcement_id: str, req: AnnouncementUpdate, db=Depends(get_db),
                        session: SessionContext = Depends(require_session)):
    announcement = _load(crud.get_announcement, db, announcement_id, "announcement")
    require_manager(db, session, announcement.course_id)
    try:
        crud.update_announcement(db, announcement_id, req.model_dump(exclude_unset=True))
    except BACKEND_ERRORS:
        logger.exception("Error updating announcement %s", announcement_id)
        raise _unavailable("update announcement")
    return announcement.model_copy(update=req.model_dump(exclude_unset=True))


@router.delete("/announcements/{announcement_id}")
def delete_announcement(announcement_id: str, db=Depends(get_db),
                        session: SessionContext = Depends(require_session)):
    announcement = _load(crud.get_announcement, db, announcement_id, "announcement")
    require_manager(db, session, announcement.course_id)
    try:
        crud.delete_announcement(db, announcement_id)
    except BACKEND_ERRORS:
        logger.exception("Error deleting announcement %s", announcement_id)
        raise _unavailable("delete announcement")
    return {"id": announcement_id}
