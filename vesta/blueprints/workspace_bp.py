"""
Workspace & membership endpoints.

URL prefix: /api/v1/workspaces

Routes:
    GET    /api/v1/workspaces                            caller's workspaces (with role)
    POST   /api/v1/workspaces                            create
    GET    /api/v1/workspaces/changes                    newly joined workspaces since last poll
    PUT    /api/v1/workspaces/<wid>                      rename
    POST   /api/v1/workspaces/<wid>/status               archive / unarchive
    DELETE /api/v1/workspaces/<wid>                      delete with all its data
    GET    /api/v1/workspaces/<wid>/data                 dashboard bundle
    GET    /api/v1/workspaces/<wid>/permissions          caller's role and allowed actions
    GET    /api/v1/workspaces/<wid>/members              list members
    POST   /api/v1/workspaces/<wid>/members              invite
    PUT    /api/v1/workspaces/<wid>/members/<email>      change role
    DELETE /api/v1/workspaces/<wid>/members/<email>      remove
"""

import logging

from flask import Blueprint, jsonify

from vesta.blueprints import current_user, json_body, register_error_handlers
from vesta.middleware.identity import login_required
from vesta.services import workspace_service
from vesta.services.invitation_poller import NEW_WORKSPACE_MESSAGE, poller_for
from vesta.services.permission import A, allowed_actions

logger = logging.getLogger(__name__)

workspace_bp = Blueprint("workspaces", __name__, url_prefix="/api/v1/workspaces")
register_error_handlers(workspace_bp)


# ---------------------------------------------------------------------------
# Collection
# ---------------------------------------------------------------------------


@workspace_bp.route("", methods=["GET"])
@login_required
def list_workspaces():
    user = current_user()
    return jsonify({
        "items": workspace_service.list_workspaces(user.email),
        "invitations": workspace_service.list_pending_invitations(user.email),
    }), 200


@workspace_bp.route("", methods=["POST"])
@login_required
def create_workspace():
    """Body: { name }"""
    data = json_body()
    workspace = workspace_service.create_workspace(data.get("name"), current_user())
    return jsonify(workspace), 201


@workspace_bp.route("/changes", methods=["GET"])
@login_required
def workspace_changes():
    """Workspaces the caller joined since the previous call (first call seeds)."""
    new = poller_for(current_user().email).poll_once()
    return jsonify({
        "newWorkspaces": new,
        "message": NEW_WORKSPACE_MESSAGE if new else None,
    }), 200


# ---------------------------------------------------------------------------
# Single workspace
# ---------------------------------------------------------------------------


@workspace_bp.route("/<workspace_id>", methods=["PUT"])
@login_required
def rename_workspace(workspace_id):
    """Body: { name }"""
    data = json_body()
    return jsonify(workspace_service.rename_workspace(workspace_id, data.get("name"), current_user())), 200


@workspace_bp.route("/<workspace_id>/status", methods=["POST"])
@login_required
def set_workspace_status(workspace_id):
    """Body: { status: "active" | "archived" }"""
    data = json_body()
    result = workspace_service.set_workspace_status(workspace_id, data.get("status", ""), current_user())
    return jsonify(result), 200


@workspace_bp.route("/<workspace_id>", methods=["DELETE"])
@login_required
def delete_workspace(workspace_id):
    workspace_service.delete_workspace(workspace_id, current_user())
    return "", 204


@workspace_bp.route("/<workspace_id>/data", methods=["GET"])
@login_required
def workspace_data(workspace_id):
    return jsonify(workspace_service.get_workspace_data(workspace_id, current_user().email)), 200


@workspace_bp.route("/<workspace_id>/permissions", methods=["GET"])
@login_required
def workspace_permissions(workspace_id):
    member = workspace_service.authorize(workspace_id, current_user().email, A.WORKSPACE_VIEW)
    return jsonify({"role": member.role.value, "actions": allowed_actions(member.role)}), 200


# ---------------------------------------------------------------------------
# Members
# ---------------------------------------------------------------------------


@workspace_bp.route("/<workspace_id>/members", methods=["GET"])
@login_required
def list_members(workspace_id):
    workspace_service.authorize(workspace_id, current_user().email, A.WORKSPACE_VIEW)
    members = workspace_service.get_members(workspace_id)
    return jsonify({"items": [m.to_dict() for m in members], "total": len(members)}), 200


@workspace_bp.route("/<workspace_id>/members", methods=["POST"])
@login_required
def invite_member(workspace_id):
    """Body: { email, role }"""
    data = json_body()
    invitation = workspace_service.invite_member(
        workspace_id, data.get("email"), data.get("role", "Member"), current_user(),
    )
    return jsonify(invitation), 201


@workspace_bp.route("/<workspace_id>/members/<email>", methods=["PUT"])
@login_required
def change_member_role(workspace_id, email):
    """Body: { role }"""
    data = json_body()
    member = workspace_service.change_member_role(workspace_id, email, data.get("role"), current_user())
    return jsonify(member), 200


@workspace_bp.route("/<workspace_id>/members/<email>", methods=["DELETE"])
@login_required
def remove_member(workspace_id, email):
    workspace_service.remove_member(workspace_id, email, current_user())
    return "", 204
