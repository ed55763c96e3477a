"""
Identity Middleware: resolves the bearer token into ``g.current_user``.

A missing, expired or invalid token leaves ``g.current_user`` as None
(logged out); views decorated with ``login_required`` then answer 401.
"""

import functools
import logging

import jwt as pyjwt
from flask import g, request

from vesta.services.identity_service import decode_identity_token
from vesta.utils.errors import E, api_error

logger = logging.getLogger(__name__)

# Paths that never need an identity
IDENTITY_SKIP_PREFIXES = (
    "/api/v1/health",
    "/api/v1/auth/token",
)


def init_identity_middleware(app):
    """Register the identity resolver as a before_request hook."""

    @app.before_request
    def _resolve_identity():
        g.current_user = None

        path = request.path
        if not path.startswith("/api/v1/"):
            return
        if path.startswith(IDENTITY_SKIP_PREFIXES):
            return

        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return

        try:
            g.current_user = decode_identity_token(auth_header[7:])
        except pyjwt.ExpiredSignatureError:
            logger.info("Expired identity token on %s", path)
        except pyjwt.InvalidTokenError as exc:
            logger.warning("Invalid identity token on %s: %s", path, exc)


def login_required(f):
    """Decorator: 401 unless the request carries a valid identity token."""

    @functools.wraps(f)
    def decorated(*args, **kwargs):
        if getattr(g, "current_user", None) is None:
            return api_error(E.UNAUTHENTICATED, "Authentication required. Sign in and retry.")
        return f(*args, **kwargs)

    return decorated
