"""
Vesta Plan Resilience Review
Blueprint registry.

Shared helpers:
    - current_user(): the identity resolved by the identity middleware
    - pagination_args(): limit/offset from the query string
    - register_error_handlers(bp): platform exceptions → JSON error bodies
"""

import logging

from flask import g, request
from werkzeug.exceptions import HTTPException

from vesta.core.exceptions import (
    AuthenticationRequired,
    ConflictError,
    ExtractionError,
    LastAdminViolation,
    NotFoundError,
    PermissionDenied,
    StoreUnavailable,
    TransitionError,
    UnregisteredUser,
    UnsupportedFormat,
    ValidationError,
)
from vesta.models.workspace import User
from vesta.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def current_user() -> User:
    """Identity of the caller; only valid inside ``login_required`` views."""
    user = getattr(g, "current_user", None)
    if user is None:
        raise AuthenticationRequired()
    return user


def pagination_args(default_limit=50, max_limit=500):
    """Read limit/offset from the query string.

    Query params:
        limit:  max items (default 50, capped at max_limit)
        offset: starting position (default 0)

    Returns:
        (offset, limit)
    """
    try:
        limit = min(max(int(request.args.get("limit", default_limit)), 1), max_limit)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    return offset, limit


def json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def register_error_handlers(bp):
    """Map platform exceptions to API errors for every view of ``bp``."""

    @bp.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        return api_error(E.VALIDATION_INVALID, str(error), details=error.details or None)

    @bp.errorhandler(UnsupportedFormat)
    def _handle_unsupported(error: UnsupportedFormat):
        return api_error(E.UNSUPPORTED_FORMAT, str(error), details={"extension": error.extension})

    @bp.errorhandler(ExtractionError)
    def _handle_extraction(error: ExtractionError):
        return api_error(E.EXTRACTION_FAILED, str(error))

    @bp.errorhandler(AuthenticationRequired)
    def _handle_unauthenticated(error: AuthenticationRequired):
        return api_error(E.UNAUTHENTICATED, str(error))

    @bp.errorhandler(PermissionDenied)
    def _handle_forbidden(error: PermissionDenied):
        return api_error(E.FORBIDDEN, str(error))

    @bp.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        return api_error(E.NOT_FOUND, str(error))

    @bp.errorhandler(UnregisteredUser)
    def _handle_unregistered(error: UnregisteredUser):
        return api_error(E.UNREGISTERED_USER, str(error))

    @bp.errorhandler(LastAdminViolation)
    def _handle_last_admin(error: LastAdminViolation):
        return api_error(E.LAST_ADMIN, str(error))

    @bp.errorhandler(ConflictError)
    def _handle_conflict(error: ConflictError):
        return api_error(E.CONFLICT_DUPLICATE, str(error))

    @bp.errorhandler(TransitionError)
    def _handle_transition(error: TransitionError):
        return api_error(E.CONFLICT_STATE, str(error),
                         details={"action": error.action, "current": error.current})

    @bp.errorhandler(StoreUnavailable)
    def _handle_store(error: StoreUnavailable):
        return api_error(E.STORE_UNAVAILABLE, "Storage is temporarily unavailable. Please try again.")

    @bp.errorhandler(Exception)
    def _handle_unexpected(error: Exception):
        if isinstance(error, HTTPException):
            return api_error(E.INTERNAL, error.description or error.name, status=error.code)
        logger.exception("Unexpected error in %s endpoint=%s", bp.name, request.endpoint)
        return api_error(E.INTERNAL, "Internal server error")
