"""
Knowledge base, dismissal rule and custom regulation endpoints.

URL prefix: /api/v1/workspaces/<wid>

Routes:
    GET    /knowledge-sources              list
    POST   /knowledge-sources              body { title, content, category }
    DELETE /knowledge-sources/<sid>
    GET    /dismissal-rules                list learned rules
    DELETE /dismissal-rules/<rule_id>      Administrator only
    GET    /regulations                    list custom regulations
    POST   /regulations                    body { ruleText }; Administrator only
    DELETE /regulations/<reg_id>           Administrator only
"""

from flask import Blueprint, jsonify

from vesta.blueprints import current_user, json_body, register_error_handlers
from vesta.middleware.identity import login_required
from vesta.services import dismissal_service, knowledge_service

knowledge_bp = Blueprint("knowledge", __name__, url_prefix="/api/v1/workspaces/<workspace_id>")
register_error_handlers(knowledge_bp)


# ── Knowledge sources ────────────────────────────────────────────────────────


@knowledge_bp.route("/knowledge-sources", methods=["GET"])
@login_required
def list_sources(workspace_id):
    items = knowledge_service.list_sources(workspace_id, current_user().email)
    return jsonify({"items": items, "total": len(items)}), 200


@knowledge_bp.route("/knowledge-sources", methods=["POST"])
@login_required
def add_source(workspace_id):
    data = json_body()
    source = knowledge_service.add_source(
        workspace_id, data.get("title"), data.get("content"), data.get("category"), current_user(),
    )
    return jsonify(source), 201


@knowledge_bp.route("/knowledge-sources/<source_id>", methods=["DELETE"])
@login_required
def delete_source(workspace_id, source_id):
    knowledge_service.delete_source(workspace_id, source_id, current_user())
    return "", 204


# ── Dismissal rules ──────────────────────────────────────────────────────────


@knowledge_bp.route("/dismissal-rules", methods=["GET"])
@login_required
def list_rules(workspace_id):
    items = dismissal_service.list_rules(workspace_id, current_user().email)
    return jsonify({"items": items, "total": len(items)}), 200


@knowledge_bp.route("/dismissal-rules/<rule_id>", methods=["DELETE"])
@login_required
def delete_rule(workspace_id, rule_id):
    dismissal_service.delete_rule(workspace_id, rule_id, current_user())
    return "", 204


# ── Custom regulations ───────────────────────────────────────────────────────


@knowledge_bp.route("/regulations", methods=["GET"])
@login_required
def list_regulations(workspace_id):
    items = knowledge_service.list_regulations(workspace_id, current_user().email)
    return jsonify({"items": items, "total": len(items)}), 200


@knowledge_bp.route("/regulations", methods=["POST"])
@login_required
def add_regulation(workspace_id):
    data = json_body()
    return jsonify(knowledge_service.add_regulation(workspace_id, data.get("ruleText"), current_user())), 201


@knowledge_bp.route("/regulations/<regulation_id>", methods=["DELETE"])
@login_required
def delete_regulation(workspace_id, regulation_id):
    knowledge_service.delete_regulation(workspace_id, regulation_id, current_user())
    return "", 204
