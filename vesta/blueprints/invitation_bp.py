"""
Invitation endpoints (addressed to the caller).

Routes:
    GET  /api/v1/invitations           pending invitations
    POST /api/v1/invitations/<wid>     accept or decline; body { accept: bool }
"""

from flask import Blueprint, jsonify

from vesta.blueprints import current_user, json_body, register_error_handlers
from vesta.core.exceptions import ValidationError
from vesta.middleware.identity import login_required
from vesta.services import workspace_service
from vesta.utils.helpers import parse_bool

invitation_bp = Blueprint("invitations", __name__, url_prefix="/api/v1/invitations")
register_error_handlers(invitation_bp)


@invitation_bp.route("", methods=["GET"])
@login_required
def list_invitations():
    items = workspace_service.list_pending_invitations(current_user().email)
    return jsonify({"items": items, "total": len(items)}), 200


@invitation_bp.route("/<workspace_id>", methods=["POST"])
@login_required
def respond(workspace_id):
    data = json_body()
    if "accept" not in data:
        raise ValidationError("accept is required", details={"accept": "required"})
    result = workspace_service.respond_to_invitation(workspace_id, parse_bool(data["accept"]), current_user())
    return jsonify(result), 200
