"""
Sign-up/sign-in, the signed-in user's own profile and password, and
direct messages.
"""
import logging
from typing import Optional

import requests
from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status

import crud
import storage
from auth import SessionContext, SessionProvider, get_session_provider, require_session
from database import BACKEND_ERRORS, get_bucket, get_db
from errors import AuthError
from schemas import MessageCreate, PasswordChange, SignInRequest, SignUpRequest

logger = logging.getLogger(__name__)

router = APIRouter(tags=["account"])


def _identity_unavailable(exc: Exception) -> HTTPException:
    logger.error("Identity service request failed: %s", exc)
    return HTTPException(status_code=503, detail="Authentication service unavailable")


# ------------------------------------------------------------------------
# Sign-up / sign-in
# ------------------------------------------------------------------------

@router.post("/auth/signup", status_code=201)
def sign_up(req: SignUpRequest, provider: SessionProvider = Depends(get_session_provider)):
    try:
        return provider.sign_up(req.email, req.password, req.display_name, req.role)
    except requests.RequestException as exc:
        raise _identity_unavailable(exc)
    except BACKEND_ERRORS:
        logger.exception("Error creating account for %s", req.email)
        raise HTTPException(status_code=503, detail="Could not create account")


@router.post("/auth/signin")
def sign_in(req: SignInRequest, provider: SessionProvider = Depends(get_session_provider)):
    try:
        return provider.sign_in(req.email, req.password)
    except requests.RequestException as exc:
        raise _identity_unavailable(exc)


@router.post("/auth/signout")
def sign_out(
    provider: SessionProvider = Depends(get_session_provider),
    session: SessionContext = Depends(require_session),
):
    try:
        provider.sign_out(session.uid)
    except BACKEND_ERRORS:
        logger.exception("Error signing out %s", session.uid)
        raise HTTPException(status_code=503, detail="Could not sign out")
    return {"status": "signed_out"}


# ------------------------------------------------------------------------
# Profile
# ------------------------------------------------------------------------

def _require_profile(session: SessionContext):
    if session.profile is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Profile not found")
    return session.profile


@router.get("/profile")
def get_profile(session: SessionContext = Depends(require_session)):
    return _require_profile(session)


@router.patch("/profile")
def update_profile(
    display_name: Optional[str] = Form(None, alias="displayName"),
    bio: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    db=Depends(get_db),
    bucket=Depends(get_bucket),
    provider: SessionProvider = Depends(get_session_provider),
    session: SessionContext = Depends(require_session),
):
    profile = _require_profile(session)
    changes = {}
    if display_name is not None:
        changes["displayName"] = display_name
    if bio is not None:
        changes["bio"] = bio

    try:
        if image is not None and image.filename:
            changes["photoURL"] = storage.upload_profile_image(
                bucket, session.uid, image.file, image.filename, content_type=image.content_type
            )
        if "displayName" in changes or "photoURL" in changes:
            provider.update_account(
                session.uid,
                changes.get("displayName", profile.display_name),
                changes.get("photoURL", profile.photo_url),
            )
        if changes:
            crud.update_user(db, session.uid, changes)
    except BACKEND_ERRORS:
        logger.exception("Error updating profile of %s", session.uid)
        raise HTTPException(status_code=503, detail="Could not update profile")

    return profile.model_copy(
        update={
            "display_name": changes.get("displayName", profile.display_name),
            "photo_url": changes.get("photoURL", profile.photo_url),
            "bio": changes.get("bio", profile.bio),
        }
    )


# The settings screen this serves used to stop at form validation. This route
# goes further and replaces the password once the current one checks out;
# DESIGN.md records that choice.
@router.post("/profile/password")
def change_password(
    req: PasswordChange,
    provider: SessionProvider = Depends(get_session_provider),
    session: SessionContext = Depends(require_session),
):
    try:
        provider.change_password(session, req.current_password, req.new_password, req.confirm_password)
    except AuthError as exc:
        if exc.code == "password-mismatch":
            raise HTTPException(status_code=400, detail=str(exc))
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Current password is incorrect")
    except requests.RequestException as exc:
        raise _identity_unavailable(exc)
    except BACKEND_ERRORS:
        logger.exception("Error changing password of %s", session.uid)
        raise HTTPException(status_code=503, detail="Could not change password")
    return {"status": "password_changed"}


# ------------------------------------------------------------------------
# Messages
# ------------------------------------------------------------------------

@router.get("/messages")
def list_messages(db=Depends(get_db), session: SessionContext = Depends(require_session)):
    try:
        messages = crud.get_user_messages(db, session.uid)
    except BACKEND_ERRORS:
        logger.exception("Error fetching messages for %s", session.uid)
        messages = []
    return {"items": messages}


@router.post("/messages", status_code=201)
def send_message(req: MessageCreate, db=Depends(get_db), session: SessionContext = Depends(require_session)):
    try:
        if crud.get_user(db, req.recipient_id) is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Recipient not found")
        message_id = crud.send_message(
            db,
            {
                "senderId": session.uid,
                "participants": [session.uid, req.recipient_id],
                "subject": req.subject,
                "body": req.body,
            },
        )
    except BACKEND_ERRORS:
        logger.exception("Error sending message from %s", session.uid)
        raise HTTPException(status_code=503, detail="Could not send message")
    return {"id": message_id}


@router.post("/messages/{message_id}/read")
def mark_read(message_id: str, db=Depends(get_db), session: SessionContext = Depends(require_session)):
    try:
        message = crud.get_message(db, message_id)
        if message is None or session.uid not in message.participants:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Message not found")
        crud.mark_message_as_read(db, message_id)
    except BACKEND_ERRORS:
        logger.exception("Error marking message %s as read", message_id)
        raise HTTPException(status_code=503, detail="Could not update message")
    return message.model_copy(update={"read": True})
