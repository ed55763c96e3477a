"""
Vesta Plan Resilience Review
Workspace Poller.

Notices when the caller has been added to a workspace since the last look.

Architecture:
    - WorkspacePoller keeps the set of workspace ids already known for one
      user and reports only ids it has not seen before
    - The first poll seeds the known set and reports nothing
    - ``poll_once`` backs GET /api/v1/workspaces/changes
    - ``start`` runs the same check every WORKSPACE_POLL_INTERVAL seconds on
      a daemon thread inside the app context, handing changes to a callback

Pollers are cached per user in ``app.extensions["vesta.pollers"]``; the
cache is process-local.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable

from flask import Flask, current_app

from vesta.services import workspace_service

logger = logging.getLogger(__name__)

NEW_WORKSPACE_MESSAGE = "You've been added to a new workspace!"
_EXTENSION_KEY = "vesta.pollers"


class WorkspacePoller:
    """Per-user diff of workspace membership against a cached known-ids set."""

    def __init__(
        self,
        user_email: str,
        *,
        app: Flask | None = None,
        interval: float | None = None,
        on_change: Callable[[list[dict]], None] | None = None,
    ):
        self.user_email = user_email.lower()
        self._app = app
        self._interval = interval
        self.on_change = on_change
        self.known_ids: set[str] | None = None
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def interval(self) -> float:
        if self._interval is not None:
            return self._interval
        app = self._app or current_app
        return float(app.config.get("WORKSPACE_POLL_INTERVAL", 30))

    def poll_once(self) -> list[dict]:
        """Return workspaces that appeared since the previous poll."""
        workspaces = workspace_service.list_workspaces(self.user_email)
        with self._lock:
            if self.known_ids is None:
                self.known_ids = {ws["id"] for ws in workspaces}
                return []
            new = [ws for ws in workspaces if ws["id"] not in self.known_ids]
            self.known_ids.update(ws["id"] for ws in new)
        if new:
            logger.info("New workspace membership detected: %s",
                        ", ".join(ws["id"] for ws in new), extra={"user_email": self.user_email})
        return new

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            try:
                with self._app.app_context():
                    new = self.poll_once()
                if new and self.on_change:
                    self.on_change(new)
            except Exception:
                logger.exception("Workspace poll failed for %s", self.user_email)

    def start(self) -> None:
        """Seed the known set, then poll on a daemon thread until ``stop``."""
        if self._app is None:
            self._app = current_app._get_current_object()
        if self._thread and self._thread.is_alive():
            return
        with self._app.app_context():
            self._interval = self.interval
            self.poll_once()
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._run, name=f"workspace-poller-{self.user_email}", daemon=True,
        )
        self._thread.start()

    def stop(self, timeout: float | None = None) -> None:
        self._stop.set()
        if self._thread:
            self._thread.join(timeout)
            self._thread = None


def poller_for(user_email: str) -> WorkspacePoller:
    """The cached poller of ``user_email`` in the current app."""
    pollers = current_app.extensions.setdefault(_EXTENSION_KEY, {})
    key = user_email.lower()
    if key not in pollers:
        pollers[key] = WorkspacePoller(key, app=current_app._get_current_object())
    return pollers[key]
