"""
Identity endpoints.

Routes:
    POST /api/v1/auth/session   register the signed-in identity; returns pending invitations
    GET  /api/v1/auth/me        identity carried by the bearer token
    POST /api/v1/auth/token     development login: { email, name } -> identity token
                                (404 unless IDENTITY_DEV_LOGIN is enabled)
"""

import logging

from flask import Blueprint, current_app, jsonify

from vesta.blueprints import current_user, json_body, register_error_handlers
from vesta.middleware.identity import login_required
from vesta.models.workspace import User
from vesta.services import workspace_service
from vesta.services.identity_service import issue_identity_token
from vesta.utils.errors import E, api_error

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth_bp", __name__, url_prefix="/api/v1/auth")
register_error_handlers(auth_bp)


@auth_bp.route("/session", methods=["POST"])
@login_required
def start_session():
    """Record the caller so other users can invite them."""
    user = workspace_service.register_user(current_user())
    logger.info("Session started", extra={"user_email": user.email})
    return jsonify({
        "user": user.to_dict(),
        "invitations": workspace_service.list_pending_invitations(user.email),
    }), 200


@auth_bp.route("/me", methods=["GET"])
@login_required
def me():
    return jsonify({"user": current_user().to_dict()}), 200


@auth_bp.route("/token", methods=["POST"])
def dev_token():
    """
    Issue an identity token without an external identity provider.

    Body: { "email": "...", "name": "..." }
    """
    if not current_app.config.get("IDENTITY_DEV_LOGIN"):
        return api_error(E.NOT_FOUND, "Not found")
    data = json_body()
    email = workspace_service.normalize_email(data.get("email"))
    user = User(email=email, name=(data.get("name") or "").strip() or email.split("@")[0])
    return jsonify({"token": issue_identity_token(user), "user": user.to_dict()}), 200
