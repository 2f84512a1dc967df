from unittest.mock import MagicMock, patch

import pytest
from firebase_admin import auth as firebase_auth

from auth import (
    ANONYMOUS,
    Identity,
    SessionProvider,
    can_manage_course,
    is_allowed,
    merge_profile,
)
from conftest import make_session, make_snapshot
from errors import AuthError
from schemas import Course


@pytest.fixture
def sessions(db) -> SessionProvider:
    return SessionProvider(db)


def profile_snapshot(db, data, exists=True):
    db.collection.return_value.document.return_value.get.return_value = make_snapshot(
        "u1", data, exists=exists
    )


class TestMergeProfile:
    def test_stored_fields_win(self):
        identity = Identity(uid="u1", email="a@example.com", display_name="From token", photo_url="p.png")
        profile = merge_profile(identity, {"displayName": "Stored", "role": "instructor"})

        assert profile.id == "u1"
        assert profile.display_name == "Stored"
        assert profile.email == "a@example.com"
        assert profile.photo_url == "p.png"
        assert profile.role == "instructor"


class TestResolve:
    def test_no_token_is_anonymous(self, sessions):
        assert sessions.resolve(None) is ANONYMOUS

    @patch("auth.firebase_auth.verify_id_token", side_effect=ValueError("bad token"))
    def test_rejected_token_is_anonymous(self, mock_verify, sessions):
        assert sessions.resolve("garbage") is ANONYMOUS

    @patch("auth.firebase_auth.verify_id_token")
    def test_verified_token_loads_profile(self, mock_verify, db, sessions):
        mock_verify.return_value = {"uid": "u1", "email": "a@example.com", "name": "Ann"}
        profile_snapshot(db, {"role": "admin", "status": "active"})

        session = sessions.resolve("token")

        assert session.uid == "u1"
        assert session.role == "admin"
        assert session.profile.display_name == "Ann"
        db.collection.assert_called_with("users")

    @patch("auth.firebase_auth.verify_id_token")
    def test_missing_profile_keeps_identity(self, mock_verify, db, sessions):
        mock_verify.return_value = {"uid": "u1"}
        profile_snapshot(db, None, exists=False)

        session = sessions.resolve("token")

        assert session.uid == "u1"
        assert session.profile is None
        assert session.role is None


class TestAccounts:
    @patch("auth.firebase_auth.create_user")
    def test_create_account_writes_active_profile(self, mock_create, db, sessions):
        mock_create.return_value = MagicMock(uid="new-uid")

        uid = sessions.create_account("b@example.com", "secret1", "Bob", "instructor")

        assert uid == "new-uid"
        db.collection.return_value.document.assert_called_with("new-uid")
        data = db.collection.return_value.document.return_value.set.call_args.args[0]
        assert data["role"] == "instructor"
        assert data["status"] == "active"
        assert data["displayName"] == "Bob"
        assert "createdAt" in data

    @patch("auth.firebase_auth.create_user")
    def test_existing_email_is_rejected(self, mock_create, db, sessions):
        mock_create.side_effect = firebase_auth.EmailAlreadyExistsError("exists", None, None)

        with pytest.raises(AuthError) as excinfo:
            sessions.create_account("b@example.com", "secret1", "Bob", "student")

        assert excinfo.value.code == "email-exists"
        db.collection.return_value.document.return_value.set.assert_not_called()

    @patch("auth.requests.post")
    def test_sign_in_returns_tokens(self, mock_post, sessions):
        mock_post.return_value.status_code = 200
        mock_post.return_value.json.return_value = {
            "localId": "u1",
            "idToken": "id-token",
            "refreshToken": "refresh",
            "expiresIn": "3600",
        }

        tokens = sessions.sign_in("a@example.com", "pw")

        assert tokens == {"uid": "u1", "idToken": "id-token", "refreshToken": "refresh", "expiresIn": 3600}
        assert mock_post.call_args.kwargs["json"]["returnSecureToken"] is True

    @patch("auth.requests.post")
    def test_bad_credentials(self, mock_post, sessions):
        mock_post.return_value.status_code = 400
        mock_post.return_value.json.return_value = {"error": {"message": "INVALID_PASSWORD"}}

        with pytest.raises(AuthError) as excinfo:
            sessions.sign_in("a@example.com", "wrong")

        assert excinfo.value.code == "INVALID_PASSWORD"

    @patch("auth.firebase_auth.update_user")
    @patch("auth.requests.post")
    def test_password_mismatch_checks_nothing_remotely(self, mock_post, mock_update, sessions):
        with pytest.raises(AuthError) as excinfo:
            sessions.change_password(make_session("student"), "old", "new-secret", "other-secret")

        assert excinfo.value.code == "password-mismatch"
        mock_post.assert_not_called()
        mock_update.assert_not_called()

    @patch("auth.firebase_auth.update_user")
    @patch("auth.requests.post")
    def test_password_change_reauthenticates_first(self, mock_post, mock_update, sessions):
        mock_post.return_value.status_code = 400
        mock_post.return_value.json.return_value = {"error": {"message": "INVALID_PASSWORD"}}

        with pytest.raises(AuthError):
            sessions.change_password(make_session("student"), "wrong", "new-secret", "new-secret")

        mock_update.assert_not_called()


class TestRoleGating:
    @pytest.mark.parametrize(
        "role, allowed, expected",
        [
            ("admin", ("admin",), True),
            ("student", ("admin",), False),
            ("instructor", ("instructor", "admin"), True),
            (None, ("instructor", "admin", "student"), False),
        ],
    )
    def test_is_allowed(self, role, allowed, expected):
        assert is_allowed(role, allowed) is expected

    def test_course_management(self):
        course = Course(id="c1", title="Course", instructor={"id": "t1", "name": "Dana"})

        assert can_manage_course(make_session("admin", uid="a1"), course)
        assert can_manage_course(make_session("instructor", uid="t1"), course)
        assert not can_manage_course(make_session("instructor", uid="t2"), course)
        assert not can_manage_course(make_session("student", uid="t1"), course)
