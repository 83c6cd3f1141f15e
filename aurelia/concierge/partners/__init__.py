# concierge/partners/__init__.py
from __future__ import annotations

from datetime import date

from flask import Blueprint, jsonify, make_response, request

from concierge.auth.utils import admin_required
from concierge.errors import ValidationError
from concierge.partners import outreach

partners_bp = Blueprint("partners_bp", __name__, url_prefix="/admin/partners")


def _filtered():
    return outreach.filter_prospects(
        outreach.list_prospects(),
        search=request.args.get("q", ""),
        status=request.args.get("status", "all"),
        category=request.args.get("category", "all"),
        priority=request.args.get("priority", "all"),
    )


@partners_bp.route("/prospects", methods=["GET"])
@admin_required
def list_prospects():
    everything = outreach.list_prospects()
    prospects = _filtered()
    return jsonify(
        prospects=[p.to_dict() for p in prospects],
        stats=outreach.prospect_stats(everything),
    ), 200


@partners_bp.route("/prospects", methods=["POST"])
@admin_required
def add_prospect():
    prospect = outreach.add_prospect(request.get_json(silent=True) or {})
    return jsonify(prospect=prospect.to_dict()), 201


@partners_bp.route("/prospects/<prospect_id>", methods=["GET"])
@admin_required
def prospect_detail(prospect_id):
    prospect = outreach.load_prospect(prospect_id)
    return jsonify(
        prospect=prospect.to_dict(),
        outreach=[log.to_dict() for log in outreach.outreach_history(prospect.id)],
    ), 200


@partners_bp.route("/prospects/<prospect_id>/status", methods=["POST"])
@admin_required
def change_status(prospect_id):
    payload = request.get_json(silent=True) or {}
    follow_up = None
    if payload.get("follow_up_date"):
        try:
            follow_up = date.fromisoformat(payload["follow_up_date"])
        except (TypeError, ValueError):
            raise ValidationError("follow_up_date must be YYYY-MM-DD")
    prospect = outreach.change_status(outreach.load_prospect(prospect_id), payload.get("status", ""), follow_up)
    return jsonify(prospect=prospect.to_dict()), 200


@partners_bp.route("/prospects/<prospect_id>/outreach", methods=["POST"])
@admin_required
def send_outreach(prospect_id):
    """Body: subject + body, or template_id to fill them from a template."""
    prospect = outreach.load_prospect(prospect_id)
    payload = request.get_json(silent=True) or {}
    subject, body = payload.get("subject"), payload.get("body")
    if payload.get("template_id"):
        template = next((t for t in outreach.list_templates() if t.id == payload["template_id"]), None)
        if template is None:
            raise ValidationError("Unknown template")
        rendered = outreach.render_template(template, prospect)
        subject, body = subject or rendered["subject"], body or rendered["body"]
    entry = outreach.send_outreach(prospect, subject, body)
    return jsonify(log=entry.to_dict(), prospect=prospect.to_dict()), 200


@partners_bp.route("/templates", methods=["GET"])
@admin_required
def list_templates():
    return jsonify(templates=[t.to_dict() for t in outreach.list_templates()]), 200


@partners_bp.route("/bulk-outreach", methods=["POST"])
@admin_required
def bulk_outreach():
    payload = request.get_json(silent=True) or {}
    result = outreach.bulk_outreach(
        outreach.list_prospects(),
        category=payload.get("category", "all"),
        status=payload.get("status", "all"),
        priority=payload.get("priority", "all"),
        custom_subject=payload.get("custom_subject"),
        custom_message=payload.get("custom_message"),
    )
    return jsonify(result.to_dict()), 200


@partners_bp.route("/export", methods=["GET"])
@admin_required
def export_csv():
    resp = make_response(outreach.export_csv(_filtered()))
    resp.headers["Content-Type"] = "text/csv; charset=utf-8"
    resp.headers["Content-Disposition"] = f"attachment; filename=partner-prospects-{date.today().isoformat()}.csv"
    return resp
