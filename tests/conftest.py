"""Pytest shared fixtures for the users API."""
import os
import pathlib
import sys
from types import SimpleNamespace

# Add project root to Python path
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Configure test environment BEFORE any app imports
os.environ.setdefault("DEMO_MODE", "true")

import pytest
import requests

from usersapi.api.decorators import issue_token
from usersapi.config import AppConfig
from usersapi.core.backend import InMemoryBackend
from usersapi.core.hooks import Hooks
from usersapi.core.user_resource import UserResourceMapper
from usersapi.flask_app import create_app

TEST_SECRET_KEY = "test-secret-key-for-users-api-0123456789"
TEST_ISSUER = "usersapi-test"


# ─────────────────────────────────────────────────────────────────────────────
# Network Guard Rails
# ─────────────────────────────────────────────────────────────────────────────
@pytest.fixture(autouse=True)
def _block_network(monkeypatch, request):
    """
    Prevent unit tests from reaching a platform API.

    Integration tests are explicitly marked with @pytest.mark.integration and
    are allowed to perform real HTTP calls by skipping this fixture.
    """
    if request.node.get_closest_marker("integration"):
        return

    def _blocked(method):
        def _stub(url, *args, **kwargs):
            raise RuntimeError(f"Unexpected HTTP {method} in unit test: {url}")
        return _stub

    for method in ("get", "post", "put", "delete"):
        monkeypatch.setattr(requests, method, _blocked(method.upper()))


# ─────────────────────────────────────────────────────────────────────────────
# Configuration & Backend
# ─────────────────────────────────────────────────────────────────────────────
def make_config(tmp_path, **overrides) -> AppConfig:
    base = dict(
        demo_mode=False,
        secret_key=TEST_SECRET_KEY,
        token_issuer=TEST_ISSUER,
        api_url_prefix="/api",
        api_base_url="",
        audit_log_dir=str(tmp_path / "audit"),
        audit_log_signing_key="test-audit-signing-key",
    )
    base.update(overrides)
    return AppConfig(**base)


@pytest.fixture()
def app_config(tmp_path):
    return make_config(tmp_path)


@pytest.fixture()
def backend():
    return InMemoryBackend()


@pytest.fixture()
def users(backend):
    """One user per default role, plus a second author owning content."""
    ids = SimpleNamespace(
        admin=backend.create_user("admin", "admin-pass", "admin@example.com", role="administrator"),
        editor=backend.create_user("eddie", "editor-pass", "eddie@example.com", role="editor"),
        author=backend.create_user("alice", "author-pass", "alice@example.com", role="author"),
        author2=backend.create_user("bob", "author2-pass", "bob@example.com", role="author"),
        subscriber=backend.create_user("sam", "subscriber-pass", "sam@example.com", role="subscriber"),
    )
    return ids


@pytest.fixture()
def hooks():
    return Hooks()


@pytest.fixture()
def mapper_for(backend, hooks):
    """Build a mapper acting as the given user id (0 = logged out)."""

    def _build(user_id=0, **kwargs):
        kwargs.setdefault("location_base", "http://localhost/api")
        return UserResourceMapper(backend, hooks, current_user_id=user_id, **kwargs)

    return _build


# ─────────────────────────────────────────────────────────────────────────────
# Flask Test Client
# ─────────────────────────────────────────────────────────────────────────────
@pytest.fixture()
def app(app_config, backend):
    flask_app = create_app(app_config, backend=backend)
    flask_app.config.update(TESTING=True)
    return flask_app


@pytest.fixture()
def client(app):
    with app.test_client() as client:
        yield client


# ─────────────────────────────────────────────────────────────────────────────
# Authentication Helpers
# ─────────────────────────────────────────────────────────────────────────────
@pytest.fixture()
def auth_headers():
    """Build an Authorization header carrying a valid token for a user id."""

    def _headers(user_id: int, **kwargs) -> dict:
        token = issue_token(user_id, TEST_SECRET_KEY, TEST_ISSUER, **kwargs)
        return {"Authorization": f"Bearer {token}"}

    return _headers


# ─────────────────────────────────────────────────────────────────────────────
# Pytest Configuration
# ─────────────────────────────────────────────────────────────────────────────
def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests (requires a running platform API)"
    )
