"""
Analysis report endpoints.

URL prefix: /api/v1/workspaces/<wid>/reports

Routes:
    GET    /                                  list (archived only with ?include_archived=1)
    POST   /                                  upload (multipart "file") or pasted text (JSON)
    POST   /bulk-delete                       body { reportIds: [...] }
    GET    /<rid>                             get
    PUT    /<rid>                             rename; body { title }
    DELETE /<rid>                             delete
    POST   /<rid>/status                      archive / unarchive; body { status }
    GET    /<rid>/highlight                   highlighted HTML (?hovered=&selected=)
    POST   /<rid>/findings/<fid>/resolve
    POST   /<rid>/findings/<fid>/dismiss      body { reason }
    POST   /<rid>/edit                        begin manual edit
    POST   /<rid>/edit/save                   body { documentContent }
    POST   /<rid>/edit/cancel
    POST   /<rid>/enhance                     AI revision; returns the diff
    GET    /<rid>/diff                        pending revision (?mode=line|word)
    POST   /<rid>/enhance/accept
    POST   /<rid>/enhance/discard
    GET    /<rid>/download                    ?format=txt|pdf
    POST   /<rid>/chat                        body { message, history }
"""

import io
import logging

from flask import Blueprint, current_app, jsonify, request, send_file

from vesta import limiter
from vesta.blueprints import current_user, json_body, register_error_handlers
from vesta.core.exceptions import ValidationError
from vesta.middleware.identity import login_required
from vesta.services import export_service, knowledge_service, report_service
from vesta.services.permission import A
from vesta.services.report_lifecycle import ReportLifecycle, load_report
from vesta.services.workspace_service import authorize
from vesta.utils.errors import E, api_error
from vesta.utils.helpers import parse_bool

logger = logging.getLogger(__name__)

report_bp = Blueprint("reports", __name__, url_prefix="/api/v1/workspaces/<workspace_id>/reports")
register_error_handlers(report_bp)

_ai_limit = limiter.shared_limit("30/minute", scope="ai_generate")


def _lifecycle() -> ReportLifecycle:
    lifecycle = current_app.extensions.get("vesta.lifecycle")
    if lifecycle is None:
        lifecycle = ReportLifecycle()
        current_app.extensions["vesta.lifecycle"] = lifecycle
    return lifecycle


# ---------------------------------------------------------------------------
# Collection
# ---------------------------------------------------------------------------


@report_bp.route("", methods=["GET"])
@login_required
def list_reports(workspace_id):
    include_archived = parse_bool(request.args.get("include_archived"))
    items = report_service.list_reports(workspace_id, current_user().email, include_archived=include_archived)
    return jsonify({"items": items, "total": len(items)}), 200


@report_bp.route("", methods=["POST"])
@login_required
@_ai_limit
def create_report(workspace_id):
    """Multipart upload with a "file" part, or JSON { title?, content }."""
    user = current_user()
    upload = request.files.get("file")
    if upload is not None:
        if not upload.filename:
            raise ValidationError("file name is required", details={"file": "required"})
        report = report_service.create_report_from_upload(workspace_id, upload.filename, upload.read(), user)
        return jsonify(report), 201

    data = json_body()
    if "content" not in data:
        raise ValidationError("Provide a file or the plan content", details={"content": "required"})
    report = report_service.create_report_from_text(workspace_id, data.get("title"), data.get("content"), user)
    return jsonify(report), 201


@report_bp.route("/bulk-delete", methods=["POST"])
@login_required
def bulk_delete(workspace_id):
    """Body: { reportIds: [...] }. 200 even on partial failure; see failureCount."""
    data = json_body()
    result = report_service.bulk_delete_reports(workspace_id, data.get("reportIds"), current_user())
    return jsonify(result), 200


# ---------------------------------------------------------------------------
# Single report
# ---------------------------------------------------------------------------


@report_bp.route("/<report_id>", methods=["GET"])
@login_required
def get_report(workspace_id, report_id):
    return jsonify(report_service.get_report(workspace_id, report_id, current_user().email)), 200


@report_bp.route("/<report_id>", methods=["PUT"])
@login_required
def rename_report(workspace_id, report_id):
    data = json_body()
    return jsonify(report_service.rename_report(workspace_id, report_id, data.get("title"), current_user())), 200


@report_bp.route("/<report_id>", methods=["DELETE"])
@login_required
def delete_report(workspace_id, report_id):
    report_service.delete_report(workspace_id, report_id, current_user())
    return "", 204


@report_bp.route("/<report_id>/status", methods=["POST"])
@login_required
def set_report_status(workspace_id, report_id):
    data = json_body()
    report = _lifecycle().set_status(workspace_id, report_id, data.get("status", ""), current_user())
    return jsonify(report.to_dict()), 200


@report_bp.route("/<report_id>/highlight", methods=["GET"])
@login_required
def highlight_report(workspace_id, report_id):
    result = report_service.highlight_report(
        workspace_id, report_id, current_user().email,
        hovered_id=request.args.get("hovered") or None,
        selected_id=request.args.get("selected") or None,
    )
    return jsonify(result), 200


# ---------------------------------------------------------------------------
# Findings
# ---------------------------------------------------------------------------


@report_bp.route("/<report_id>/findings/<finding_id>/resolve", methods=["POST"])
@login_required
def resolve_finding(workspace_id, report_id, finding_id):
    report = _lifecycle().resolve_finding(workspace_id, report_id, finding_id, current_user())
    return jsonify(report.to_dict()), 200


@report_bp.route("/<report_id>/findings/<finding_id>/dismiss", methods=["POST"])
@login_required
def dismiss_finding(workspace_id, report_id, finding_id):
    """Body: { reason }, one of the three feedback reason labels."""
    data = json_body()
    if not data.get("reason"):
        raise ValidationError("reason is required", details={"reason": "required"})
    report, rule = _lifecycle().dismiss_finding(workspace_id, report_id, finding_id, data["reason"], current_user())
    return jsonify({"report": report.to_dict(), "dismissalRule": rule}), 200


# ---------------------------------------------------------------------------
# Manual edit
# ---------------------------------------------------------------------------


@report_bp.route("/<report_id>/edit", methods=["POST"])
@login_required
def begin_edit(workspace_id, report_id):
    return jsonify(_lifecycle().begin_edit(workspace_id, report_id, current_user()).to_dict()), 200


@report_bp.route("/<report_id>/edit/save", methods=["POST"])
@login_required
def save_edit(workspace_id, report_id):
    data = json_body()
    report = _lifecycle().save_edit(workspace_id, report_id, data.get("documentContent"), current_user())
    return jsonify(report.to_dict()), 200


@report_bp.route("/<report_id>/edit/cancel", methods=["POST"])
@login_required
def cancel_edit(workspace_id, report_id):
    return jsonify(_lifecycle().cancel_edit(workspace_id, report_id, current_user()).to_dict()), 200


# ---------------------------------------------------------------------------
# Enhancement
# ---------------------------------------------------------------------------


@report_bp.route("/<report_id>/enhance", methods=["POST"])
@login_required
@_ai_limit
def enhance(workspace_id, report_id):
    sources = knowledge_service.load_sources(workspace_id)
    result = _lifecycle().enhance(workspace_id, report_id, current_user(), knowledge_sources=sources)
    return jsonify(result), 200


@report_bp.route("/<report_id>/diff", methods=["GET"])
@login_required
def current_diff(workspace_id, report_id):
    mode = request.args.get("mode", "line")
    return jsonify(_lifecycle().current_diff(workspace_id, report_id, current_user(), mode=mode)), 200


@report_bp.route("/<report_id>/enhance/accept", methods=["POST"])
@login_required
def accept_enhancement(workspace_id, report_id):
    return jsonify(_lifecycle().accept_enhancement(workspace_id, report_id, current_user()).to_dict()), 200


@report_bp.route("/<report_id>/enhance/discard", methods=["POST"])
@login_required
def discard_enhancement(workspace_id, report_id):
    return jsonify(_lifecycle().discard_enhancement(workspace_id, report_id, current_user()).to_dict()), 200


# ---------------------------------------------------------------------------
# Download & chat
# ---------------------------------------------------------------------------


@report_bp.route("/<report_id>/download", methods=["GET"])
@login_required
def download(workspace_id, report_id):
    fmt = request.args.get("format", "pdf").lower()
    if fmt not in export_service.EXPORT_FORMATS:
        return api_error(E.VALIDATION_INVALID, "Unsupported format. Supported values: txt, pdf.")

    authorize(workspace_id, current_user().email, A.WORKSPACE_VIEW)
    report = load_report(workspace_id, report_id)
    filename = export_service.download_name(report, fmt)
    if fmt == "txt":
        return send_file(io.BytesIO(export_service.export_text(report)), mimetype="text/plain",
                         as_attachment=True, download_name=filename)
    try:
        content = export_service.export_pdf(report)
    except RuntimeError as exc:
        logger.error("PDF export failed for %s: %s", report_id, exc)
        return api_error(E.INTERNAL, "PDF export is not available on this server.", status=503)
    return send_file(io.BytesIO(content), mimetype="application/pdf",
                     as_attachment=True, download_name=filename)


@report_bp.route("/<report_id>/chat", methods=["POST"])
@login_required
@_ai_limit
def chat(workspace_id, report_id):
    """Body: { message, history: [{role, content}] }"""
    data = json_body()
    history = data.get("history") if isinstance(data.get("history"), list) else []
    reply = report_service.chat(workspace_id, report_id, history, data.get("message"), current_user())
    return jsonify(reply), 200
