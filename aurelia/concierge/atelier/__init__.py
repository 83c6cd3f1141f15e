# concierge/atelier/__init__.py
from __future__ import annotations

from flask import Blueprint, Response, jsonify, request

from concierge.ai_clients import generate_block_copy
from concierge.atelier import service
from concierge.atelier.blocks import normalize_blocks
from concierge.atelier.builder import SiteBuilder
from concierge.auth.utils import current_member, login_required, tier_required
from concierge.context import get_member_context
from concierge.errors import ValidationError

atelier_bp = Blueprint("atelier_bp", __name__, url_prefix="/atelier")


def _site_json(site, status=200):
    return jsonify(site=site.to_dict()), status


@atelier_bp.route("/sites", methods=["GET"])
@login_required
def list_sites():
    ctx = get_member_context()
    sites = service.list_sites(ctx.member)
    return jsonify(
        sites=[s.to_dict() for s in sites],
        can_create=service.can_create_site(ctx, len(sites)),
        limit=service.site_limit(ctx.tier if ctx.subscribed else None),
    ), 200


@atelier_bp.route("/sites", methods=["POST"])
@tier_required("gold", "platinum")
def create_site():
    payload = request.get_json(silent=True) or {}
    site = service.create_site(
        get_member_context(),
        payload.get("name", ""),
        template_id=payload.get("template_id"),
        slug=payload.get("slug"),
    )
    return _site_json(site, 201)


@atelier_bp.route("/sites/<site_id>", methods=["GET"])
@login_required
def get_site(site_id):
    site = service.load_site(current_member(), site_id)
    builder = SiteBuilder(site)
    data = site.to_dict()
    data.update(builder.payload())
    return jsonify(site=data), 200


@atelier_bp.route("/sites/<site_id>", methods=["PATCH"])
@login_required
def update_site(site_id):
    """
    Apply edits through an editing session and save the whole site.

    Body keys (all optional): name, content (full block list), block_updates
    ([{"index": n, "type"|"content"|"order": ...}]), branding (partial).
    """
    site = service.load_site(current_member(), site_id)
    payload = request.get_json(silent=True) or {}
    builder = SiteBuilder(site)

    if "name" in payload:
        builder.rename(payload["name"])
    if "content" in payload:
        builder.blocks = normalize_blocks(payload["content"])
        builder.has_changes = True
    block_updates = payload.get("block_updates") or []
    if not isinstance(block_updates, list):
        raise ValidationError("block_updates must be a list")
    for upd in block_updates:
        if not isinstance(upd, dict):
            raise ValidationError("Each block update must be an object")
        upd = dict(upd)
        index = upd.pop("index", None)
        builder.update_block(index, upd)
    if "branding" in payload:
        builder.update_branding(payload.get("branding") or {})

    if builder.has_changes:
        builder.save()
    return _site_json(builder.site)


@atelier_bp.route("/sites/<site_id>", methods=["DELETE"])
@login_required
def delete_site(site_id):
    service.delete_site(current_member(), site_id)
    return jsonify(ok=True), 200


@atelier_bp.route("/sites/<site_id>/publish", methods=["POST"])
@login_required
def publish_site(site_id):
    site = service.load_site(current_member(), site_id)
    return _site_json(SiteBuilder(site).publish())


@atelier_bp.route("/sites/<site_id>/unpublish", methods=["POST"])
@login_required
def unpublish_site(site_id):
    site = service.load_site(current_member(), site_id)
    return _site_json(SiteBuilder(site).unpublish())


@atelier_bp.route("/sites/<site_id>/preview", methods=["GET"])
@login_required
def preview_site(site_id):
    site = service.load_site(current_member(), site_id)
    html = SiteBuilder(site).preview(request.args.get("view", "desktop"))
    return Response(html, mimetype="text/html")


@atelier_bp.route("/templates", methods=["GET"])
@login_required
def list_templates():
    ctx = get_member_context()
    tier = ctx.tier if ctx.subscribed else None
    out = []
    for tpl in service.list_templates():
        data = tpl.to_dict()
        data["accessible"] = service.can_access_template(tier, tpl.min_tier)
        out.append(data)
    return jsonify(templates=out), 200


@atelier_bp.route("/assist", methods=["POST"])
@tier_required("gold", "platinum")
def content_assist():
    payload = request.get_json(silent=True) or {}
    text = generate_block_copy(
        payload.get("prompt", ""),
        tone=payload.get("tone") or "prestigious",
        language=payload.get("language") or "en",
        block_type=payload.get("blockType") or payload.get("block_type"),
    )
    return jsonify(content=text), 200
