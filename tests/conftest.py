# tests/conftest.py
"""
Test configuration and shared fixtures.

Provides the Flask app (TestConfig, Supabase client replaced by a mock),
test client, per-table fake query builders, sign-in helper and sample rows.
"""

import os
import sys
from collections import defaultdict
from unittest.mock import MagicMock, Mock

import pytest

# Add the project root to sys.path
PROJECT_ROOT = os.path.dirname(os.path.dirname(__file__))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)


class FakeQuery:
    """
    Stand-in for a postgrest query builder on one table.

    Every builder method (select, eq, order, insert, ...) is recorded and
    returns the same object; execute() returns the configured data or raises
    the configured error.
    """

    def __init__(self, data=None, error=None, count=None):
        self.data = data
        self.error = error
        self.count = count
        self.calls = []

    def __getattr__(self, name):
        def method(*args, **kwargs):
            self.calls.append((name, args, kwargs))
            return self
        return method

    def execute(self):
        self.calls.append(("execute", (), {}))
        if self.error is not None:
            raise self.error
        return Mock(data=self.data, count=self.count)

    def called(self, name):
        return [c for c in self.calls if c[0] == name]


@pytest.fixture
def tables():
    """Fake query builders keyed by table name."""
    return defaultdict(FakeQuery)


@pytest.fixture
def supabase_mock(tables):
    """Mock Supabase client whose .table(name) returns tables[name]."""
    mock_client = MagicMock()
    mock_client.table.side_effect = lambda name: tables[name]
    return mock_client


@pytest.fixture
def app(monkeypatch, supabase_mock):
    """Create and configure a Flask app instance for testing."""
    monkeypatch.setenv("APP_CONFIG", "steamfamily.config.TestConfig")

    from steamfamily import create_app

    # Covers the shared client built at startup and the per-request user clients
    monkeypatch.setattr("steamfamily.services.supabase_client.create_client", Mock(return_value=supabase_mock))
    app = create_app()

    app.config.update({
        "TESTING": True,
        "WTF_CSRF_ENABLED": False,
        "RATELIMIT_ENABLED": False,
    })

    yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def runner(app):
    return app.test_cli_runner()


@pytest.fixture
def sign_in(client, supabase_mock, tables):
    """
    Sign a test client in as a user, going through the real session check.

    Usage: sign_in(user, profile) where profile is a profiles row or None.
    """
    def _sign_in(user, profile=None):
        with client.session_transaction() as sess:
            sess["user"] = {"id": user["id"], "email": user["email"]}
            sess["access_token"] = "test-access-token"
            sess["refresh_token"] = "test-refresh-token"

        auth_user = Mock()
        auth_user.model_dump.return_value = dict(user)
        supabase_mock.auth.set_session.return_value = Mock(user=auth_user, session=None)
        tables["profiles"].data = profile
        return client

    return _sign_in


@pytest.fixture
def sample_user():
    return {"id": "user-123", "email": "player@example.com"}


@pytest.fixture
def sample_profile(sample_user):
    return {
        "id": sample_user["id"],
        "email": sample_user["email"],
        "is_admin": False,
        "display_name": "Player One",
        "avatar_url": None,
        "created_at": "2025-01-01T00:00:00Z",
    }


@pytest.fixture
def admin_profile(sample_profile):
    return {**sample_profile, "is_admin": True}


@pytest.fixture
def sample_tool():
    return {
        "id": "tool-123",
        "slug": "family-sharing-helper",
        "title": "Family Sharing Helper",
        "short_description": "Manage Steam Family Sharing",
        "full_description": "A utility that helps manage library sharing between family accounts.",
        "images": ["https://cdn.example.com/a.png"],
        "tags": ["steam", "utility"],
        "download_url": "https://downloads.example.com/helper.zip",
        "mirror_url": None,
        "donate_url": "https://donate.example.com/helper",
        "telegram_url": None,
        "version": "1.2.0",
        "downloads": 42,
        "visible": True,
        "created_at": "2025-01-01T00:00:00Z",
    }


@pytest.fixture
def sample_tool_payload():
    """Admin form payload as the management UI sends it."""
    return {
        "slug": "New Tool Name",
        "title": "New Tool",
        "short_description": "Short text",
        "full_description": "Longer description of the new tool.",
        "images": "https://cdn.example.com/1.png, https://cdn.example.com/2.png",
        "tags": "steam, , family",
        "download_url": "https://downloads.example.com/new.zip",
        "mirror_url": "",
        "donate_url": "",
        "telegram_url": "https://t.me/newtool",
        "version": "0.1.0",
        "visible": True,
        "downloads": 0,
    }


@pytest.fixture
def sample_review(sample_user, sample_tool):
    return {
        "id": "review-123",
        "tool_id": sample_tool["id"],
        "user_id": sample_user["id"],
        "rating": 4,
        "body": "Works great with my family library.",
        "created_at": "2025-01-02T00:00:00Z",
    }
