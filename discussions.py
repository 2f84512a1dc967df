"""
Course discussions: a live, incrementally maintained thread tree.

`DiscussionFeed` listens to the course's discussions query and keeps a cache
keyed by discussion id. Each discussion gets its own replies listener when it
appears and loses it when it is removed, so a change to one thread never
re-reads the others. Listener callbacks arrive on Firestore's watch threads;
all cache access goes through one lock.
"""
import asyncio
import logging
import threading
from typing import Callable, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect, status
from fastapi.encoders import jsonable_encoder

import crud
from auth import ACCESS_DENIED, SessionContext, can_manage_course, require_session
from database import BACKEND_ERRORS, get_db
from errors import MalformedDocumentError
from queries import created_key
from schemas import Discussion, DiscussionThread, PostRequest, Reply, parse_document

logger = logging.getLogger(__name__)

ADDED = "ADDED"
MODIFIED = "MODIFIED"
REMOVED = "REMOVED"

UpdateCallback = Callable[[List[DiscussionThread]], None]


def _change_kind(change) -> str:
    kind = change.type
    return getattr(kind, "name", kind)


class DiscussionFeed:
    def __init__(self, db, course_id: str, on_update: Optional[UpdateCallback] = None):
        self.db = db
        self.course_id = course_id
        self.on_update = on_update
        self._lock = threading.RLock()
        self._discussions: Dict[str, Discussion] = {}
        self._replies: Dict[str, Dict[str, Reply]] = {}
        self._reply_watches: Dict[str, object] = {}
        self._watch = None
        self._stopped = False

    def start(self) -> None:
        self._watch = crud.discussions_query(self.db, self.course_id).on_snapshot(
            self._on_discussions_snapshot
        )
        logger.info("Listening to discussions of course %s", self.course_id)

    def stop(self) -> None:
        with self._lock:
            self._stopped = True
            watches = list(self._reply_watches.values())
            self._reply_watches.clear()
            if self._watch is not None:
                watches.append(self._watch)
                self._watch = None
        for watch in watches:
            watch.unsubscribe()
        logger.info("Stopped listening to discussions of course %s", self.course_id)

    # Listener callbacks

    def _on_discussions_snapshot(self, docs, changes, read_time) -> None:
        stale = []
        with self._lock:
            for change in changes:
                watch = self._apply_discussion_change(_change_kind(change), change.document)
                if watch is not None:
                    stale.append(watch)
        # unsubscribing joins the watch thread, so never under the lock
        for watch in stale:
            watch.unsubscribe()
        self._notify()

    def _replies_listener(self, discussion_id: str):
        def on_snapshot(docs, changes, read_time) -> None:
            with self._lock:
                for change in changes:
                    self.apply_reply_change(discussion_id, _change_kind(change), change.document)
            self._notify()

        return on_snapshot

    # Cache updates

    def apply_discussion_change(self, kind: str, snapshot) -> None:
        with self._lock:
            stale = self._apply_discussion_change(kind, snapshot)
        if stale is not None:
            stale.unsubscribe()

    def _apply_discussion_change(self, kind: str, snapshot):
        """Update the cache; returns the replies watch to release, if any."""
        if self._stopped:
            return None
        discussion_id = snapshot.id
        if kind == REMOVED:
            self._discussions.pop(discussion_id, None)
            self._replies.pop(discussion_id, None)
            return self._reply_watches.pop(discussion_id, None)

        try:
            discussion = parse_document(Discussion, discussion_id, snapshot.to_dict())
        except MalformedDocumentError as exc:
            logger.warning("Skipping discussion: %s", exc)
            return None
        self._discussions[discussion_id] = discussion
        if discussion_id not in self._reply_watches:
            self._replies.setdefault(discussion_id, {})
            self._reply_watches[discussion_id] = crud.replies_query(
                self.db, discussion_id
            ).on_snapshot(self._replies_listener(discussion_id))
        return None

    def apply_reply_change(self, discussion_id: str, kind: str, snapshot) -> None:
        with self._lock:
            if discussion_id not in self._discussions or self._stopped:
                return
            replies = self._replies.setdefault(discussion_id, {})
            if kind == REMOVED:
                replies.pop(snapshot.id, None)
                return
            try:
                replies[snapshot.id] = parse_document(Reply, snapshot.id, snapshot.to_dict())
            except MalformedDocumentError as exc:
                logger.warning("Skipping reply: %s", exc)

    def threads(self) -> List[DiscussionThread]:
        """The current tree: discussions newest first, replies oldest first."""
        with self._lock:
            threads = []
            for discussion_id, discussion in self._discussions.items():
                replies = sorted(self._replies.get(discussion_id, {}).values(), key=created_key)
                threads.append(
                    DiscussionThread(**discussion.model_dump(), replies=replies)
                )
        return sorted(threads, key=created_key, reverse=True)

    def _notify(self) -> None:
        if self._stopped or self.on_update is None:
            return
        self.on_update(self.threads())


def build_threads(db, course_id: str) -> List[DiscussionThread]:
    """One-shot read of a course's threads, without listening."""
    threads = []
    for discussion in crud.get_course_discussions(db, course_id):
        replies = crud.get_replies(db, discussion.id)
        threads.append(DiscussionThread(**discussion.model_dump(), replies=replies))
    return threads


# Routes

router = APIRouter(tags=["discussions"])


def can_join_discussions(db, session: SessionContext, course_id: str) -> bool:
    course = crud.get_course(db, course_id)
    if course is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Course not found")
    if can_manage_course(session, course):
        return True
    return bool(crud.get_enrollments(db, user_id=session.uid, course_id=course_id, limit=1))


def _require_participant(db, session: SessionContext, course_id: str) -> None:
    try:
        allowed = can_join_discussions(db, session, course_id)
    except BACKEND_ERRORS:
        logger.exception("Error checking discussion access for %s", course_id)
        raise HTTPException(status_code=503, detail="Could not load course")
    if not allowed:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Enroll to join the discussion")


@router.get("/courses/{course_id}/discussions")
def list_discussions(course_id: str, db=Depends(get_db), session: SessionContext = Depends(require_session)):
    _require_participant(db, session, course_id)
    try:
        return {"items": build_threads(db, course_id)}
    except BACKEND_ERRORS:
        logger.exception("Error fetching discussions for %s", course_id)
        return {"items": []}


@router.post("/courses/{course_id}/discussions", status_code=201)
def post_discussion(course_id: str, req: PostRequest, db=Depends(get_db),
                    session: SessionContext = Depends(require_session)):
    message = req.message.strip()
    if not message:
        raise HTTPException(status_code=400, detail="Message is empty")
    if session.profile is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=ACCESS_DENIED)
    _require_participant(db, session, course_id)
    try:
        discussion_id = crud.create_discussion(db, course_id, session.author(), message)
    except BACKEND_ERRORS:
        logger.exception("Error posting discussion")
        raise HTTPException(status_code=503, detail="Could not post discussion")
    return {"id": discussion_id}


@router.post("/discussions/{discussion_id}/replies", status_code=201)
def post_reply(discussion_id: str, req: PostRequest, db=Depends(get_db),
               session: SessionContext = Depends(require_session)):
    message = req.message.strip()
    if not message:
        raise HTTPException(status_code=400, detail="Message is empty")
    if session.profile is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=ACCESS_DENIED)
    try:
        discussion = crud.get_discussion(db, discussion_id)
    except BACKEND_ERRORS:
        logger.exception("Error fetching discussion %s", discussion_id)
        raise HTTPException(status_code=503, detail="Could not post reply")
    if discussion is None:
        raise HTTPException(status_code=404, detail="Discussion not found")
    _require_participant(db, session, discussion.course_id)
    try:
        reply_id = crud.create_reply(db, discussion_id, session.author(), message)
    except BACKEND_ERRORS:
        logger.exception("Error posting reply")
        raise HTTPException(status_code=503, detail="Could not post reply")
    return {"id": reply_id}


@router.post("/discussions/{discussion_id}/like")
def like(discussion_id: str, db=Depends(get_db), session: SessionContext = Depends(require_session)):
    try:
        crud.like_discussion(db, discussion_id)
    except BACKEND_ERRORS:
        logger.exception("Error liking discussion %s", discussion_id)
        raise HTTPException(status_code=503, detail="Could not like discussion")
    return {"id": discussion_id}


@router.websocket("/courses/{course_id}/discussions/live")
async def discussions_live(websocket: WebSocket, course_id: str, token: Optional[str] = None):
    """Push the full thread tree of a course on every change."""
    sessions = websocket.app.state.sessions
    db = sessions.db
    session = await asyncio.to_thread(sessions.resolve, token)
    if session.identity is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    try:
        allowed = await asyncio.to_thread(can_join_discussions, db, session, course_id)
    except (HTTPException, MalformedDocumentError, *BACKEND_ERRORS):
        allowed = False
    if not allowed:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    loop = asyncio.get_running_loop()
    updates: asyncio.Queue = asyncio.Queue()
    feed = DiscussionFeed(
        db, course_id, on_update=lambda threads: loop.call_soon_threadsafe(updates.put_nowait, threads)
    )

    async def push():
        while True:
            threads = await updates.get()
            await websocket.send_json({"courseId": course_id, "threads": jsonable_encoder(threads)})

    pusher = asyncio.create_task(push())
    try:
        await asyncio.to_thread(feed.start)
        while True:
            # clients send nothing; this only notices the disconnect
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.info("Discussion feed client left course %s", course_id)
    except BACKEND_ERRORS:
        logger.exception("Discussion feed failed for course %s", course_id)
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
    finally:
        pusher.cancel()
        await asyncio.to_thread(feed.stop)
        (outcome,) = await asyncio.gather(pusher, return_exceptions=True)
        if isinstance(outcome, Exception):
            logger.warning("Discussion feed push failed for course %s: %s", course_id, outcome)
