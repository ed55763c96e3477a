"""
Shared pytest fixtures for the Vesta test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup + per-app caches reset (autouse)
    - client: Flask test client (function-scoped)
    - memory_store: swaps the SQL store for an in-process one
    - fake_llm: scripted LLM gateway
    - make_user / join / auth_headers: identity and membership factories
    - admin / member / workspace: a registered Administrator with a workspace
"""

import json

import pytest

from vesta import create_app
from vesta.models import db as _db
from vesta.models.workspace import User
from vesta.services import workspace_service
from vesta.services.identity_service import issue_identity_token
from vesta.services.store import MemoryWorkspaceStore

_APP_CACHES = ("vesta.lifecycle", "vesta.pollers", "vesta.llm")


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        for key in _APP_CACHES:
            app.extensions.pop(key, None)
        yield
        for key in _APP_CACHES:
            app.extensions.pop(key, None)
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture()
def memory_store(app):
    """In-process store for tests that touch the store from worker threads."""
    original = app.extensions["vesta.store"]
    store = MemoryWorkspaceStore()
    app.extensions["vesta.store"] = store
    yield store
    app.extensions["vesta.store"] = original


# ── LLM ──────────────────────────────────────────────────────────────────


class FakeGateway:
    """Stands in for LLMGateway. Queued replies are served in order; once the
    queue is empty the last served reply repeats."""

    def __init__(self):
        self.replies = []
        self.calls = []
        self.error = None
        self._last = ""

    def queue(self, *payloads):
        for payload in payloads:
            self.replies.append(payload if isinstance(payload, str) else json.dumps(payload))
        return self

    def chat(self, messages, model=None, *, purpose="", user="system", **kwargs):
        self.calls.append({"purpose": purpose, "messages": messages, "user": user, **kwargs})
        if self.error is not None:
            raise self.error
        if self.replies:
            self._last = self.replies.pop(0)
        return {"content": self._last, "prompt_tokens": 0, "completion_tokens": 0,
                "model": "fake", "latency_ms": 0, "provider": "fake"}

    def queue_analysis(self, *findings, project=72):
        """Queue a plan_analysis reply; ``findings`` are (title, severity, snippet) tuples."""
        return self.queue({
            "scores": {"project": project, "strategicGoals": 60, "regulations": 55, "risk": 70},
            "findings": [
                {"title": title, "severity": severity, "sourceSnippet": snippet,
                 "recommendation": f"Address: {title}"}
                for title, severity, snippet in findings
            ],
        })

    def queue_enhancement(self, revised_text):
        return self.queue({"improvedDocumentContent": revised_text})


@pytest.fixture()
def fake_llm(app):
    """Install a FakeGateway as the app's LLM gateway."""
    gateway = FakeGateway()
    app.extensions["vesta.llm"] = gateway
    return gateway


# ── Users & workspaces ───────────────────────────────────────────────────


@pytest.fixture()
def make_user():
    """Factory: register a signed-in identity and return it."""

    def _make(email, name=None):
        return workspace_service.register_user(User(email=email, name=name or email.split("@")[0]))

    return _make


@pytest.fixture()
def join():
    """Factory: invite ``user`` to a workspace and accept on their behalf."""

    def _join(workspace_id, admin, user, role="Member"):
        workspace_service.invite_member(workspace_id, user.email, role, admin)
        workspace_service.respond_to_invitation(workspace_id, True, user)
        return user

    return _join


@pytest.fixture()
def auth_headers():
    """Factory: bearer header carrying ``user``'s identity token."""

    def _headers(user):
        return {"Authorization": f"Bearer {issue_identity_token(user)}"}

    return _headers


@pytest.fixture()
def admin(make_user):
    return make_user("ada@example.com", "Ada Admin")


@pytest.fixture()
def member(make_user):
    return make_user("mo@example.com", "Mo Member")


@pytest.fixture()
def workspace(admin):
    return workspace_service.create_workspace("Resilience Program", admin)
