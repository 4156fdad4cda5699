"""
Unit and integration tests for authentication.

Tests sign-up, sign-in, sign-out and session handling:
- Credential validation before calling Supabase
- Session tokens stored on sign-in
- Session verification and invalidation
- /auth/me with profile and admin gate
"""

from unittest.mock import MagicMock, Mock

import pytest

from steamfamily.services import supabase_client
from steamfamily.utils.errors import BackendError


def _auth_response(user_id="user-123", email="player@example.com", with_session=True):
    user = Mock()
    user.model_dump.return_value = {"id": user_id, "email": email}
    session = Mock(access_token="access-abc", refresh_token="refresh-xyz") if with_session else None
    return Mock(user=user, session=session)


class TestTokenLifecycle:
    """Session verification against Supabase."""

    def test_verify_session_with_valid_token(self, app, supabase_mock):
        from steamfamily.services.supabase_client import verify_session

        supabase_mock.auth.set_session.return_value = _auth_response(with_session=False)

        with app.app_context():
            user = verify_session("valid-access-token", "refresh-token")

        assert user == {"id": "user-123", "email": "player@example.com"}
        supabase_mock.auth.set_session.assert_called_once_with(
            access_token="valid-access-token",
            refresh_token="refresh-token"
        )
        supabase_mock.postgrest.auth.assert_called_once_with("valid-access-token")

    def test_verify_session_with_expired_token(self, app, supabase_mock):
        from steamfamily.services.supabase_client import verify_session

        supabase_mock.auth.set_session.side_effect = Exception("Token expired")

        with app.app_context():
            assert verify_session("expired-token") is None

    def test_refreshed_tokens_are_written_back(self, client, supabase_mock):
        with client.session_transaction() as sess:
            sess["access_token"] = "expired-access"
            sess["refresh_token"] = "old-refresh"
        # Supabase hands back a new pair when it had to refresh
        supabase_mock.auth.set_session.return_value = _auth_response()

        response = client.get("/auth/me")

        assert response.status_code == 200
        supabase_mock.postgrest.auth.assert_called_once_with("access-abc")
        with client.session_transaction() as sess:
            assert sess["access_token"] == "access-abc"
            assert sess["refresh_token"] == "refresh-xyz"

    def test_invalid_session_is_cleared(self, client, supabase_mock):
        with client.session_transaction() as sess:
            sess["access_token"] = "expired"
            sess["user"] = {"id": "user-123"}
        supabase_mock.auth.set_session.side_effect = Exception("Token expired")

        response = client.get("/auth/me")

        assert response.status_code == 401
        with client.session_transaction() as sess:
            assert "access_token" not in sess


class TestRequestScopedClient:
    """Each signed-in request talks to Supabase through a client of its own."""

    @pytest.fixture
    def user_clients(self, monkeypatch, tables, sample_user):
        """Replace per-request client creation; records each client and its options."""
        created = []

        def fake_create_client(url, key, options=None):
            user_client = MagicMock()
            user_client.table.side_effect = lambda name: tables[name]
            auth_user = Mock()
            auth_user.model_dump.return_value = dict(sample_user)
            user_client.auth.set_session.return_value = Mock(user=auth_user, session=None)
            created.append((user_client, options))
            return user_client

        monkeypatch.setattr(supabase_client, "create_client", fake_create_client)
        return created

    def test_user_client_carries_user_token(self, sign_in, sample_user, sample_profile, user_clients, supabase_mock):
        client = sign_in(sample_user, sample_profile)

        assert client.get("/auth/me").status_code == 200

        user_client, options = user_clients[0]
        assert options.headers["Authorization"] == "Bearer test-access-token"
        user_client.postgrest.auth.assert_called_once_with("test-access-token")
        # The shared client never receives a user session
        supabase_mock.auth.set_session.assert_not_called()

    def test_anonymous_request_after_signed_in_one(self, app, sign_in, sample_user, sample_profile,
                                                   user_clients, supabase_mock, tables):
        signed_in = sign_in(sample_user, sample_profile)
        signed_in.get("/auth/me")
        tables["tools"].data = []

        response = app.test_client().get("/api/v1/tools")

        assert response.status_code == 200
        user_client, _ = user_clients[0]
        assert [c.args[0] for c in user_client.table.call_args_list] == ["profiles"]
        assert [c.args[0] for c in supabase_mock.table.call_args_list] == ["tools"]
        supabase_mock.auth.set_session.assert_not_called()
        supabase_mock.postgrest.auth.assert_not_called()

    def test_review_insert_runs_as_author(self, sign_in, sample_user, sample_profile, user_clients,
                                          supabase_mock, tables, sample_review):
        client = sign_in(sample_user, sample_profile)
        tables["reviews"].data = [sample_review]

        response = client.post("/api/v1/tools/tool-123/reviews",
                               json={"rating": 4, "body": "Works great with my family library."})

        assert response.status_code == 201
        user_client, _ = user_clients[0]
        assert "reviews" in [c.args[0] for c in user_client.table.call_args_list]
        supabase_mock.table.assert_not_called()

    def test_each_request_gets_a_fresh_client(self, sign_in, sample_user, sample_profile, user_clients):
        client = sign_in(sample_user, sample_profile)

        client.get("/auth/me")
        client.get("/auth/me")

        assert len(user_clients) == 2
        assert user_clients[0][0] is not user_clients[1][0]

    def test_sign_in_does_not_touch_shared_client(self, client, supabase_mock, monkeypatch):
        user_client = MagicMock()
        user_client.auth.sign_in_with_password.return_value = _auth_response()
        monkeypatch.setattr(supabase_client, "create_client", Mock(return_value=user_client))

        response = client.post("/auth/login", json={"email": "player@example.com", "password": "hunter22"})

        assert response.status_code == 200
        supabase_mock.auth.sign_in_with_password.assert_not_called()


class TestSignIn:

    def test_login_stores_tokens(self, client, supabase_mock):
        supabase_mock.auth.sign_in_with_password.return_value = _auth_response()

        response = client.post("/auth/login", json={"email": "Player@Example.com ", "password": "hunter22"})

        assert response.status_code == 200
        assert response.get_json()["user"]["id"] == "user-123"
        supabase_mock.auth.sign_in_with_password.assert_called_once_with(
            {"email": "player@example.com", "password": "hunter22"}
        )
        with client.session_transaction() as sess:
            assert sess["access_token"] == "access-abc"
            assert sess["refresh_token"] == "refresh-xyz"

    def test_bad_credentials_surface_backend_message(self, client, supabase_mock):
        supabase_mock.auth.sign_in_with_password.side_effect = Exception("Invalid login credentials")

        response = client.post("/auth/login", json={"email": "player@example.com", "password": "wrong-pass"})

        assert response.status_code == 502
        assert response.get_json()["error"] == "Invalid login credentials"

    @pytest.mark.parametrize("payload", [
        {"email": "", "password": "hunter22"},
        {"email": "not-an-email", "password": "hunter22"},
        {"email": "player@example.com", "password": ""},
    ])
    def test_invalid_input_never_reaches_supabase(self, client, supabase_mock, payload):
        response = client.post("/auth/login", json=payload)

        assert response.status_code == 400
        supabase_mock.auth.sign_in_with_password.assert_not_called()


class TestSignUp:

    def test_signup_with_immediate_session(self, client, supabase_mock):
        supabase_mock.auth.sign_up.return_value = _auth_response()

        response = client.post("/auth/signup", json={
            "email": "new@example.com", "password": "longenough", "display_name": "Newbie",
        })

        assert response.status_code == 201
        assert response.get_json()["confirmation_required"] is False
        args = supabase_mock.auth.sign_up.call_args[0][0]
        assert args["options"] == {"data": {"display_name": "Newbie"}}

    def test_signup_needing_confirmation(self, client, supabase_mock):
        supabase_mock.auth.sign_up.return_value = _auth_response(with_session=False)

        response = client.post("/auth/signup", json={"email": "new@example.com", "password": "longenough"})

        assert response.status_code == 201
        assert response.get_json()["confirmation_required"] is True
        with client.session_transaction() as sess:
            assert "access_token" not in sess

    def test_short_password_rejected(self, client, supabase_mock):
        response = client.post("/auth/signup", json={"email": "new@example.com", "password": "short"})

        assert response.status_code == 400
        supabase_mock.auth.sign_up.assert_not_called()

    def test_sign_up_without_user_is_error(self, app, supabase_mock):
        supabase_mock.auth.sign_up.return_value = Mock(user=None, session=None)

        with app.app_context(), pytest.raises(BackendError):
            supabase_client.sign_up("new@example.com", "longenough")


class TestMeAndLogout:

    def test_me_reports_profile_and_gate(self, sign_in, sample_user, admin_profile):
        client = sign_in(sample_user, admin_profile)

        data = client.get("/auth/me").get_json()

        assert data["user"] == sample_user
        assert data["profile"]["display_name"] == admin_profile["display_name"]
        assert data["admin"] == "granted"

    def test_me_without_profile_is_unknown(self, sign_in, sample_user):
        client = sign_in(sample_user, None)

        data = client.get("/auth/me").get_json()

        assert data["profile"] is None
        assert data["admin"] == "unknown"

    def test_logout_clears_session(self, sign_in, sample_user, sample_profile, supabase_mock):
        client = sign_in(sample_user, sample_profile)

        response = client.post("/auth/logout")

        assert response.status_code == 200
        supabase_mock.auth.sign_out.assert_called_once()
        with client.session_transaction() as sess:
            assert "access_token" not in sess

    def test_logout_requires_auth(self, client):
        assert client.post("/auth/logout").status_code == 401


class TestAuthPayload:

    @pytest.mark.parametrize("path", ["/auth/login", "/auth/signup"])
    @pytest.mark.parametrize("body", [["player@example.com", "hunter22"], "player@example.com", 42])
    def test_non_object_json_is_rejected(self, client, supabase_mock, path, body):
        response = client.post(path, json=body)

        assert response.status_code == 400
        assert response.get_json()["reason"] == "invalid payload"
        supabase_mock.auth.sign_in_with_password.assert_not_called()
        supabase_mock.auth.sign_up.assert_not_called()
