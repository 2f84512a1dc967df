"""
Document schemas for the LMS

Each record model represents a Firestore collection; the collection name is
carried on the class as `collection`. Stored field names are camelCase and are
kept verbatim through aliases, so documents written here stay readable by any
other client of the same project.

Request bodies for create/update routes live at the bottom of the module.
"""
from datetime import datetime
from typing import Any, ClassVar, Dict, List, Literal, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from errors import MalformedDocumentError

Role = Literal["admin", "instructor", "student"]
UserStatus = Literal["active", "inactive"]
EnrollmentStatus = Literal["active", "completed", "dropped"]
ContentType = Literal["video", "reading", "quiz", "assignment", "module"]
SubmissionStatus = Literal["submitted", "graded"]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Record(CamelModel):
    """A stored document. Unknown fields are kept as they are."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="allow"
    )

    collection: ClassVar[str]

    id: Optional[str] = Field(None, description="Document id assigned by the backend")


class AuthorRef(CamelModel):
    id: str = Field(..., description="Author uid")
    name: Optional[str] = Field(None, description="Display name at posting time")
    avatar: Optional[str] = Field(None, description="Photo URL at posting time")


class InstructorRef(CamelModel):
    id: str = Field(..., description="Instructor uid")
    name: Optional[str] = Field(None, description="Instructor display name")


class UserProfile(Record):
    collection: ClassVar[str] = "users"

    display_name: Optional[str] = Field(None, description="Name shown across the app")
    email: Optional[str] = Field(None, description="Account email")
    role: Role = Field("student", description="admin, instructor or student")
    status: UserStatus = Field("active", description="active or inactive")
    photo_url: Optional[str] = Field(None, alias="photoURL")
    bio: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Course(Record):
    collection: ClassVar[str] = "courses"

    title: str = Field(..., description="Course title")
    description: str = Field("", description="What this course covers")
    category: str = Field("", description="Category such as design or programming")
    level: str = Field("", description="beginner, intermediate, advanced")
    instructor: Optional[InstructorRef] = None
    enrollments: int = Field(0, ge=0, description="Number of enrollments")
    image: Optional[str] = Field("", description="Thumbnail URL")
    status: str = Field("published")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Enrollment(Record):
    collection: ClassVar[str] = "enrollments"

    user_id: str
    course_id: str
    user_name: Optional[str] = ""
    user_email: Optional[str] = ""
    course_title: Optional[str] = ""
    status: EnrollmentStatus = "active"
    progress: int = Field(0, ge=0, le=100)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Content(Record):
    collection: ClassVar[str] = "contents"

    course_id: str
    module_id: Optional[str] = Field(None, description="Parent module; unset on module headers")
    title: str
    type: ContentType = "video"
    order: int = 0
    url: Optional[str] = ""
    locked: bool = False
    duration: Optional[str] = ""
    description: Optional[str] = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Assessment(Record):
    collection: ClassVar[str] = "assessments"

    course_id: str
    title: str
    description: Optional[str] = ""
    due_date: Optional[datetime] = None
    estimated_time: Optional[str] = ""
    points: int = Field(100, ge=0)
    type: str = "assignment"
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Submission(Record):
    collection: ClassVar[str] = "submissions"

    user_id: str
    assessment_id: str
    course_id: Optional[str] = None
    file_url: Optional[str] = None
    file_name: Optional[str] = None
    status: SubmissionStatus = "submitted"
    grade: Optional[float] = None
    feedback: Optional[str] = None
    submitted_at: Optional[datetime] = None
    graded_at: Optional[datetime] = None


class Announcement(Record):
    collection: ClassVar[str] = "announcements"

    course_id: str
    title: str = ""
    message: str = ""
    author: Optional[AuthorRef] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Message(Record):
    collection: ClassVar[str] = "messages"

    sender_id: str
    participants: List[str] = Field(default_factory=list)
    subject: Optional[str] = ""
    body: str = ""
    read: bool = False
    created_at: Optional[datetime] = None
    read_at: Optional[datetime] = None


class Reply(Record):
    collection: ClassVar[str] = "replies"

    author: AuthorRef
    message: str
    created_at: Optional[datetime] = None
    likes: int = 0


class Discussion(Record):
    collection: ClassVar[str] = "discussions"

    course_id: str
    author: AuthorRef
    message: str
    created_at: Optional[datetime] = None
    likes: int = 0


class DiscussionThread(Discussion):
    """A discussion together with its replies, oldest reply first."""

    replies: List[Reply] = Field(default_factory=list)


R = TypeVar("R", bound=Record)


def parse_document(model: Type[R], doc_id: Optional[str], data: Optional[Dict[str, Any]]) -> R:
    payload = dict(data or {})
    payload["id"] = doc_id
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise MalformedDocumentError(model.collection, doc_id, exc.errors()) from exc


# Request bodies

class CourseUpdate(CamelModel):
    title: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    level: Optional[str] = None
    status: Optional[str] = None


class ModuleCreate(CamelModel):
    title: str = Field(..., min_length=1)


class ContentUpdate(CamelModel):
    title: Optional[str] = None
    type: Optional[ContentType] = None
    duration: Optional[str] = None
    description: Optional[str] = None
    order: Optional[int] = None
    locked: Optional[bool] = None


class AssessmentCreate(CamelModel):
    title: str = Field(..., min_length=1)
    description: str = ""
    due_date: datetime
    estimated_time: str = ""
    points: int = Field(100, ge=0)


class AssessmentUpdate(CamelModel):
    title: Optional[str] = None
    description: Optional[str] = None
    due_date: Optional[datetime] = None
    estimated_time: Optional[str] = None
    points: Optional[int] = Field(None, ge=0)


class GradeRequest(CamelModel):
    grade: float = Field(..., ge=0)
    feedback: Optional[str] = None


class AnnouncementCreate(CamelModel):
    title: str = Field(..., min_length=1)
    message: str = ""


class AnnouncementUpdate(CamelModel):
    title: Optional[str] = None
    message: Optional[str] = None


class MessageCreate(CamelModel):
    recipient_id: str
    subject: str = ""
    body: str = Field(..., min_length=1)


class PostRequest(CamelModel):
    message: str = Field(..., description="Discussion or reply text")


class EnrollmentUpdate(CamelModel):
    status: Optional[EnrollmentStatus] = None
    progress: Optional[int] = Field(None, ge=0, le=100)


class UserCreate(CamelModel):
    display_name: str = Field(..., min_length=1)
    email: str
    password: str = Field(..., min_length=6)
    role: Role = "student"


class UserUpdate(CamelModel):
    role: Optional[Role] = None
    status: Optional[UserStatus] = None


class SignUpRequest(CamelModel):
    email: str
    password: str = Field(..., min_length=6)
    display_name: str = Field(..., min_length=1)
    role: Literal["instructor", "student"] = "student"


class SignInRequest(CamelModel):
    email: str
    password: str


class PasswordChange(CamelModel):
    current_password: str
    new_password: str = Field(..., min_length=6)
    confirm_password: str
