"""
Sessions, accounts and role gating.

`SessionProvider` is built once by the application root and turns the bearer
ID token of each request into a `SessionContext`: the verified identity plus
the denormalised profile record (identity fields overlaid by the stored
`users/{uid}` document). Routes receive the context through `get_session` and
gate on its role with `require_roles`.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional

import requests
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from firebase_admin import auth as firebase_auth

import crud
from config import FIREBASE_API_KEY, IDENTITY_TOOLKIT_TIMEOUT, IDENTITY_TOOLKIT_URL
from database import BACKEND_ERRORS
from errors import AuthError, MalformedDocumentError
from schemas import AuthorRef, Course, UserProfile, parse_document

logger = logging.getLogger(__name__)

ACCESS_DENIED = "You don't have permission to view this page."

# Static allow-lists per screen or action
SCREEN_ROLES = {
    "users": ("admin",),
    "enrollments": ("admin",),
    "course:create": ("instructor", "admin"),
}


@dataclass(frozen=True)
class Identity:
    uid: str
    email: Optional[str] = None
    display_name: Optional[str] = None
    photo_url: Optional[str] = None


@dataclass(frozen=True)
class SessionContext:
    identity: Optional[Identity] = None
    profile: Optional[UserProfile] = None

    @property
    def uid(self) -> Optional[str]:
        return self.identity.uid if self.identity else None

    @property
    def role(self) -> Optional[str]:
        return self.profile.role if self.profile else None

    def author(self) -> AuthorRef:
        profile = self.profile
        return AuthorRef(
            id=self.uid,
            name=profile.display_name if profile else None,
            avatar=profile.photo_url if profile else None,
        )


ANONYMOUS = SessionContext()


def merge_profile(identity: Identity, stored: Dict[str, Any]) -> UserProfile:
    """Overlay the stored profile document on the identity's own fields."""
    data = {
        "email": identity.email,
        "displayName": identity.display_name,
        "photoURL": identity.photo_url,
    }
    data.update(stored)
    return parse_document(UserProfile, identity.uid, data)


class SessionProvider:
    def __init__(self, db, app=None):
        self.db = db
        self.app = app

    def resolve(self, id_token: Optional[str]) -> SessionContext:
        if not id_token:
            return ANONYMOUS
        try:
            claims = firebase_auth.verify_id_token(id_token, app=self.app, check_revoked=True)
        except (ValueError, firebase_auth.InvalidIdTokenError, firebase_auth.UserDisabledError) as exc:
            logger.info("Rejected ID token: %s", exc)
            return ANONYMOUS

        identity = Identity(
            uid=claims["uid"],
            email=claims.get("email"),
            display_name=claims.get("name"),
            photo_url=claims.get("picture"),
        )
        return SessionContext(identity=identity, profile=self.load_profile(identity))

    def load_profile(self, identity: Identity) -> Optional[UserProfile]:
        try:
            snapshot = self.db.collection(UserProfile.collection).document(identity.uid).get()
            if not snapshot.exists:
                return None
            return merge_profile(identity, snapshot.to_dict() or {})
        except BACKEND_ERRORS:
            logger.exception("Error fetching user data for %s", identity.uid)
        except MalformedDocumentError as exc:
            logger.warning("Unreadable profile: %s", exc)
        return None

    # Accounts

    def create_account(self, email: str, password: str, display_name: str, role: str) -> str:
        """Create the auth user and its profile document. Returns the uid."""
        try:
            user = firebase_auth.create_user(
                email=email, password=password, display_name=display_name, app=self.app
            )
        except firebase_auth.EmailAlreadyExistsError as exc:
            raise AuthError("An account with this email already exists", code="email-exists") from exc
        except ValueError as exc:
            raise AuthError(str(exc), code="invalid-argument") from exc

        crud.create_user_profile(
            self.db,
            user.uid,
            {"email": email, "displayName": display_name, "role": role, "status": "active"},
        )
        logger.info("Created %s account %s", role, user.uid)
        return user.uid

    def sign_up(self, email: str, password: str, display_name: str, role: str) -> Dict[str, Any]:
        self.create_account(email, password, display_name, role)
        return self.sign_in(email, password)

    def sign_in(self, email: str, password: str) -> Dict[str, Any]:
        response = requests.post(
            f"{IDENTITY_TOOLKIT_URL}/accounts:signInWithPassword",
            params={"key": FIREBASE_API_KEY},
            json={"email": email, "password": password, "returnSecureToken": True},
            timeout=IDENTITY_TOOLKIT_TIMEOUT,
        )
        if response.status_code == 400:
            message = response.json().get("error", {}).get("message", "INVALID_LOGIN_CREDENTIALS")
            raise AuthError("Login failed", code=message)
        response.raise_for_status()
        data = response.json()
        return {
            "uid": data["localId"],
            "idToken": data["idToken"],
            "refreshToken": data["refreshToken"],
            "expiresIn": int(data.get("expiresIn", 3600)),
        }

    def sign_out(self, uid: str) -> None:
        firebase_auth.revoke_refresh_tokens(uid, app=self.app)
        logger.info("Revoked sessions of %s", uid)

    def update_account(self, uid: str, display_name: Optional[str], photo_url: Optional[str]) -> None:
        firebase_auth.update_user(
            uid,
            display_name=display_name or None,
            photo_url=photo_url or None,
            app=self.app,
        )

    def change_password(self, session: SessionContext, current: str, new: str, confirm: str) -> None:
        """Re-check the current password, then set the new one."""
        if new != confirm:
            raise AuthError("New passwords don't match!", code="password-mismatch")
        email = session.profile.email if session.profile else session.identity.email
        self.sign_in(email, current)
        firebase_auth.update_user(session.uid, password=new, app=self.app)
        logger.info("Password changed for %s", session.uid)


# FastAPI dependencies

bearer = HTTPBearer(auto_error=False)


def get_session_provider(request: Request) -> SessionProvider:
    return request.app.state.sessions


def get_session(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    provider: SessionProvider = Depends(get_session_provider),
) -> SessionContext:
    return provider.resolve(credentials.credentials if credentials else None)


def require_session(session: SessionContext = Depends(get_session)) -> SessionContext:
    if session.identity is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return session


def is_allowed(role: Optional[str], allowed: Iterable[str]) -> bool:
    return role is not None and role in allowed


def require_roles(*roles: str):
    """Dependency admitting only sessions whose role is in `roles`."""

    def dependency(session: SessionContext = Depends(require_session)) -> SessionContext:
        if not is_allowed(session.role, roles):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=ACCESS_DENIED)
        return session

    return dependency


def require_screen(screen: str):
    return require_roles(*SCREEN_ROLES[screen])


def can_manage_course(session: SessionContext, course: Course) -> bool:
    if session.role == "admin":
        return True
    return (
        session.role == "instructor"
        and course.instructor is not None
        and course.instructor.id == session.uid
    )
