"""
Filtering, sorting and grouping shared by the list screens.

Predicates are plain callables taking a record and returning a bool, so a
screen filters with `filter_records(records, text_search(q, "title"), ...)`
and sorts with `sort_records(records, "newest")`.
"""
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Sequence, TypeVar

from pydantic import BaseModel, Field

from schemas import Assessment, Content, Submission

T = TypeVar("T")
Predicate = Callable[[object], bool]

ALL = "all"

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _text(value) -> str:
    return str(value).lower() if value is not None else ""


def text_search(query: Optional[str], *fields: str) -> Predicate:
    """Case-insensitive substring match on any of `fields`. Empty query matches all."""
    needle = (query or "").strip().lower()

    def predicate(record) -> bool:
        if not needle:
            return True
        return any(needle in _text(getattr(record, field, None)) for field in fields)

    return predicate


def field_equals(field: str, value: Optional[str], wildcard: str = ALL) -> Predicate:
    def predicate(record) -> bool:
        if value is None or value == wildcard:
            return True
        return getattr(record, field, None) == value

    return predicate


def filter_records(records: Iterable[T], *predicates: Predicate) -> List[T]:
    return [record for record in records if all(p(record) for p in predicates)]


def _aware(value: Optional[datetime]) -> datetime:
    if value is None:
        return _EPOCH
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def created_key(record):
    # id breaks ties so equal timestamps still sort deterministically
    return _aware(getattr(record, "created_at", None)), getattr(record, "id", None) or ""


def title_key(record):
    return _text(getattr(record, "title", None)), getattr(record, "id", None) or ""


def sort_records(records: Iterable[T], order: Optional[str] = "newest") -> List[T]:
    if order == "newest":
        return sorted(records, key=created_key, reverse=True)
    if order == "oldest":
        return sorted(records, key=created_key)
    if order == "a-z":
        return sorted(records, key=title_key)
    if order == "z-a":
        return sorted(records, key=title_key, reverse=True)
    return list(records)


class CourseModule(BaseModel):
    id: str
    title: str
    order: int = 0
    contents: List[Content] = Field(default_factory=list)


def group_into_modules(contents: Sequence[Content]) -> List[CourseModule]:
    """
    Group a course's flat content list into modules.

    Module headers are content documents of type "module"; every other item
    points at its module through `module_id`. Items whose module header is
    missing still get a module, titled by the module id.
    """
    modules: Dict[str, CourseModule] = {}
    for content in contents:
        if content.type == "module" and content.id:
            modules[content.id] = CourseModule(id=content.id, title=content.title, order=content.order)

    for content in contents:
        if content.type == "module" or not content.module_id:
            continue
        module = modules.get(content.module_id)
        if module is None:
            module = modules[content.module_id] = CourseModule(
                id=content.module_id, title=content.module_id, order=len(modules)
            )
        module.contents.append(content)

    for module in modules.values():
        module.contents.sort(key=lambda c: c.order)
    return sorted(modules.values(), key=lambda m: m.order)


def assignment_status(
    assessment: Assessment, submission: Optional[Submission], at: Optional[datetime] = None
) -> str:
    """completed once submitted, overdue past the due date, pending otherwise."""
    if submission is not None:
        return "completed"
    at = at or datetime.now(timezone.utc)
    if assessment.due_date is not None and _aware(assessment.due_date) < _aware(at):
        return "overdue"
    return "pending"
