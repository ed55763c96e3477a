"""
Audit trail endpoint.

Routes:
    GET /api/v1/workspaces/<wid>/audit    newest first; ?limit=&offset=
"""

from flask import Blueprint, jsonify

from vesta.blueprints import current_user, pagination_args, register_error_handlers
from vesta.middleware.identity import login_required
from vesta.services import audit_service
from vesta.services.permission import A
from vesta.services.workspace_service import authorize

audit_bp = Blueprint("audit", __name__, url_prefix="/api/v1/workspaces/<workspace_id>/audit")
register_error_handlers(audit_bp)


@audit_bp.route("", methods=["GET"])
@login_required
def list_audit_logs(workspace_id):
    authorize(workspace_id, current_user().email, A.AUDIT_VIEW)
    offset, limit = pagination_args()
    result = audit_service.list_logs(workspace_id, offset=offset, limit=limit)
    result.update({"offset": offset, "limit": limit})
    return jsonify(result), 200
