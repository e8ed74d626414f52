"""Authentication, session and staff management tests"""
import pytest
from unittest.mock import patch
from fastapi import status

from app.db import redis as redis_module
from app.models.user import User
from app.services.auth_service import hash_password, verify_password, is_signup_allowed
import setup_admin


@pytest.mark.critical
class TestSignup:
    """Only association addresses may create an account"""

    def test_school_domain_allowed(self, client, db_session):
        response = client.post("/api/auth/signup", json={
            "email": "New.Student@edufenelon.org", "password": "longenough", "name": "New"
        })

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["user"]["role"] == "user"
        assert "session_id" in response.cookies
        assert db_session.query(User).one().email == "new.student@edufenelon.org"

    def test_association_mailbox_allowed(self):
        assert is_signup_allowed("bdefensup@gmail.com")
        assert is_signup_allowed(" BDEFENSUP@gmail.com ")

    def test_other_domain_rejected(self, client, db_session):
        response = client.post("/api/auth/signup", json={"email": "someone@gmail.com", "password": "longenough"})

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert db_session.query(User).count() == 0

    def test_lookalike_domain_rejected(self):
        assert not is_signup_allowed("x@fakeedufenelon.org")

    def test_short_password_rejected(self, client):
        response = client.post("/api/auth/signup", json={"email": "a@edufenelon.org", "password": "short"})
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_duplicate_email_rejected(self, client, member_user):
        response = client.post("/api/auth/signup", json={"email": member_user.email, "password": "longenough"})
        assert response.json()["detail"] == "Email already registered"


@pytest.mark.critical
class TestLogin:
    def test_login_and_me(self, client, make_user):
        member_user = make_user("login@edufenelon.org", password="correct-horse")

        response = client.post("/api/auth/login", json={"email": member_user.email, "password": "correct-horse"})

        assert response.status_code == status.HTTP_200_OK
        me = client.get("/api/auth/me").json()
        assert me["user"]["email"] == member_user.email

    def test_wrong_password(self, client, member_user):
        response = client.post("/api/auth/login", json={"email": member_user.email, "password": "wrong-password"})
        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_guest_cannot_login(self, client, db_session):
        db_session.add(User(email="guest-1@ticket.local", name="Guest", role="guest"))
        db_session.commit()

        response = client.post("/api/auth/login", json={"email": "guest-1@ticket.local", "password": "anything"})
        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_me_without_session(self, client):
        assert client.get("/api/auth/me").json() == {"user": None}

    def test_logout_clears_session(self, member_client, mock_redis):
        session_id = member_client.cookies.get("session_id")

        member_client.post("/api/auth/logout")

        assert mock_redis.get(f"session:{session_id}") is None

    def test_csrf_token_is_stable_per_session(self, member_client):
        first = member_client.get("/api/auth/csrf").json()["csrf_token"]
        second = member_client.get("/api/auth/csrf").json()["csrf_token"]
        assert first == second

    def test_state_change_needs_csrf(self, member_client):
        member_client.headers.pop("X-CSRF-Token")
        response = member_client.post("/api/conversations", json={"target_user_id": 1})
        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_password_hashing(self):
        hashed = hash_password("secret-password")
        assert verify_password("secret-password", hashed)
        assert not verify_password("other", hashed)
        assert not verify_password("secret-password", None)


@pytest.mark.critical
class TestPasswordReset:
    def test_reset_with_token(self, client, db_session, make_user, mock_redis):
        user = make_user("invited@edufenelon.org", password=None)
        redis_module.set_password_reset_token("tok123", user.email)
        redis_module.set_session("old-session", user.id)

        response = client.post("/api/auth/reset-password", json={"token": "tok123", "new_password": "brand-new-pass"})

        assert response.status_code == status.HTTP_200_OK
        db_session.refresh(user)
        assert verify_password("brand-new-pass", user.password_hash)
        assert redis_module.get_password_reset_email("tok123") is None
        assert redis_module.get_session("old-session") is None

    def test_unknown_token(self, client):
        response = client.post("/api/auth/reset-password", json={"token": "nope", "new_password": "brand-new-pass"})
        assert response.status_code == status.HTTP_400_BAD_REQUEST


@pytest.mark.high
class TestStaffAdministration:
    """Admins invite staff, change roles and remove accounts"""

    def test_list_users_hides_guests(self, admin_client, staff_user, db_session):
        db_session.add(User(email="guest-1@ticket.local", name="Guest", role="guest"))
        db_session.commit()

        users = admin_client.get("/api/admin/users").json()["users"]

        assert {u["email"] for u in users} == {"admin@edufenelon.org", staff_user.email}
        staff_only = admin_client.get("/api/admin/users", params={"role": "staff"}).json()["users"]
        assert [u["email"] for u in staff_only] == [staff_user.email]

    def test_staff_cannot_manage_users(self, staff_client):
        assert staff_client.get("/api/admin/users").status_code == status.HTTP_403_FORBIDDEN

    def test_invite_sends_set_password_link(self, admin_client, db_session, mock_email_service, mock_redis):
        response = admin_client.post("/api/admin/users", json={"email": "new@gmail.com", "role": "staff"})

        assert response.status_code == status.HTTP_200_OK
        user = db_session.query(User).filter(User.email == "new@gmail.com").one()
        assert user.role == "staff"
        assert user.password_hash is None
        params = mock_email_service.Emails.send.call_args[0][0]
        assert params["to"] == "new@gmail.com"
        token = params["html"].split("reset-password?token=")[1].split('"')[0]
        assert mock_redis.get(f"password_reset_token:{token}") == "new@gmail.com"

    def test_invite_survives_email_failure(self, admin_client, db_session, mock_email_service):
        mock_email_service.Emails.send.side_effect = Exception("provider down")

        response = admin_client.post("/api/admin/users", json={"email": "new@gmail.com", "role": "user"})

        assert response.status_code == status.HTTP_200_OK
        assert db_session.query(User).filter(User.email == "new@gmail.com").count() == 1

    def test_invite_existing_email(self, admin_client, staff_user, mock_email_service):
        response = admin_client.post("/api/admin/users", json={"email": staff_user.email, "role": "admin"})
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_change_role(self, admin_client, staff_user):
        response = admin_client.patch(f"/api/admin/users/{staff_user.id}/role", json={"role": "admin"})
        assert response.json()["user"]["role"] == "admin"

    def test_cannot_demote_self(self, admin_client, admin_user):
        response = admin_client.patch(f"/api/admin/users/{admin_user.id}/role", json={"role": "staff"})
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_guest_role_not_assignable(self, admin_client, staff_user):
        response = admin_client.patch(f"/api/admin/users/{staff_user.id}/role", json={"role": "guest"})
        assert response.status_code == 422

    def test_delete_user_drops_sessions(self, admin_client, staff_user, db_session):
        redis_module.set_session("staff-session", staff_user.id)

        assert admin_client.delete(f"/api/admin/users/{staff_user.id}").json() == {"success": True}

        assert db_session.query(User).filter(User.id == staff_user.id).count() == 0
        assert redis_module.get_session("staff-session") is None

    def test_cannot_delete_self(self, admin_client, admin_user):
        response = admin_client.delete(f"/api/admin/users/{admin_user.id}")
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_delete_unknown_user(self, admin_client):
        assert admin_client.delete("/api/admin/users/999").status_code == status.HTTP_404_NOT_FOUND


@pytest.mark.high
class TestSetupAdminScript:
    def run(self, db_session, argv):
        with patch.object(setup_admin, "SessionLocal", return_value=db_session):
            return setup_admin.main(argv)

    def test_grants_admin(self, db_session, member_user, capsys):
        assert self.run(db_session, ["setup_admin.py", member_user.email]) == 0

        assert db_session.query(User).filter(User.id == member_user.id).one().role == "admin"
        assert "granted" in capsys.readouterr().out

    def test_unknown_user(self, db_session, capsys):
        assert self.run(db_session, ["setup_admin.py", "nobody@edufenelon.org"]) == 1
        assert "not found" in capsys.readouterr().out

    def test_usage(self, db_session):
        assert self.run(db_session, ["setup_admin.py"]) == 1
