import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import crud
from account import router as account_router
from admin import router as admin_router
from auth import SessionContext, SessionProvider, require_session
from config import CORS_ORIGINS, FIREBASE_API_KEY, FIREBASE_PROJECT_ID, FIREBASE_STORAGE_BUCKET, PORT
from courses import router as courses_router
from coursework import router as coursework_router
from database import BACKEND_ERRORS, close_backend, get_db, init_backend
from discussions import router as discussions_router
from errors import AuthError, MalformedDocumentError
from logging_config import configure_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    firebase_app = init_backend()
    app.state.sessions = SessionProvider(get_db(), firebase_app)
    logger.info("LMS API started")
    yield
    close_backend()


app = FastAPI(title="LMS API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(courses_router)
app.include_router(coursework_router)
app.include_router(discussions_router)
app.include_router(admin_router)
app.include_router(account_router)


@app.exception_handler(MalformedDocumentError)
async def malformed_document_handler(request: Request, exc: MalformedDocumentError):
    logger.warning("%s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=502, content={"detail": "Stored document is malformed"})


# Rejected input rather than rejected credentials
_BAD_REQUEST_CODES = {"password-mismatch", "email-exists", "invalid-argument"}


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError):
    status_code = 400 if exc.code in _BAD_REQUEST_CODES else 401
    return JSONResponse(status_code=status_code, content={"detail": str(exc), "code": exc.code})


# Sidebar entries per role
NAV_ITEMS = {
    "admin": [
        ("Dashboard", "/dashboard"),
        ("Users", "/dashboard/users"),
        ("Courses", "/dashboard/courses"),
        ("Enrollments", "/dashboard/enrollments"),
        ("Content", "/dashboard/content"),
        ("Assessments", "/dashboard/assessments"),
        ("Communications", "/dashboard/communications"),
        ("Reports", "/dashboard/reports"),
        ("Settings", "/dashboard/settings"),
    ],
    "instructor": [
        ("Dashboard", "/dashboard"),
        ("My Courses", "/dashboard/courses"),
        ("Students", "/dashboard/students"),
        ("Course Content", "/dashboard/content"),
        ("Assessments", "/dashboard/assessments"),
        ("Announcements", "/dashboard/announcements"),
        ("Messages", "/dashboard/messages"),
        ("Reports", "/dashboard/reports"),
        ("Settings", "/dashboard/settings"),
    ],
    "student": [
        ("Dashboard", "/dashboard"),
        ("My Courses", "/dashboard/courses"),
        ("Course Catalog", "/dashboard/catalog"),
        ("Assignments", "/dashboard/assignments"),
        ("Grades", "/dashboard/grades"),
        ("Messages", "/dashboard/messages"),
        ("Settings", "/dashboard/settings"),
    ],
}


def dashboard_stats(db, session: SessionContext, role: str) -> dict:
    """Headline counts; each is capped by the list query it is computed from."""
    if role == "admin":
        return {
            "totalUsers": len(crud.get_users(db)),
            "totalCourses": len(crud.get_courses(db)),
            "enrollments": len(crud.get_enrollments(db)),
        }
    if role == "instructor":
        courses = crud.get_courses(db, instructor_id=session.uid)
        return {
            "totalCourses": len(courses),
            "totalStudents": sum(course.enrollments for course in courses),
        }
    enrollments = crud.get_enrollments(db, user_id=session.uid)
    return {
        "totalCourses": len(enrollments),
        "completedCourses": sum(1 for e in enrollments if e.status == "completed"),
        "submissions": len(crud.get_user_submissions(db, session.uid)),
    }


@app.get("/")
def root():
    return {"message": "LMS API running"}


@app.get("/dashboard")
def dashboard(db=Depends(get_db), session: SessionContext = Depends(require_session)):
    role = session.role or "student"
    try:
        stats = dashboard_stats(db, session, role)
    except BACKEND_ERRORS:
        logger.exception("Error fetching dashboard counts for %s", session.uid)
        stats = {}
    return {
        "role": role,
        "profile": session.profile,
        "navItems": [{"title": title, "href": href} for title, href in NAV_ITEMS[role]],
        "stats": stats,
    }


@app.get("/health")
def health(db=Depends(get_db)):
    response = {
        "backend": "running",
        "database": "unavailable",
        "project": FIREBASE_PROJECT_ID or "default",
        "storage_bucket": "set" if FIREBASE_STORAGE_BUCKET else "not set",
        "api_key": "set" if FIREBASE_API_KEY else "not set",
        "collections": [],
    }
    try:
        response["collections"] = [collection.id for collection in db.collections()][:10]
        response["database"] = "connected"
    except BACKEND_ERRORS as e:
        response["database"] = f"error: {str(e)[:80]}"
    return response


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=PORT)
