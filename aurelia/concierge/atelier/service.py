# concierge/atelier/service.py
"""
Atelier site persistence and tier gating.

Provides:
- Site listing, loading, creation, update, deletion (scoped to the owner)
- Publish / unpublish
- Template catalogue and per-tier template access
- Per-tier site limits
"""
from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Dict, List, Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError

from concierge.atelier.blocks import (
    DEFAULT_BRANDING,
    SCHEMA_VERSION,
    normalize_blocks,
    normalize_branding,
    serialize_blocks,
)
from concierge.context import MemberContext
from concierge.errors import NotFound, PermissionDenied, TierLimitReached, ValidationError
from concierge.extensions import db
from concierge.models_atelier import SITE_STATUSES, MemberSite, SiteTemplate

# Maximum number of sites per tier; tiers not listed cannot build sites
TIER_LIMITS = {"gold": 1, "platinum": 5}

_SLUG_RE = re.compile(r"[^a-z0-9]+")
DUPLICATE_SLUG_MESSAGE = "A site with this URL already exists."

_UPDATABLE = ("name", "content", "branding", "status", "custom_domain", "analytics_enabled", "slug")


def slugify(name: str) -> str:
    return _SLUG_RE.sub("-", (name or "").lower()).strip("-")


def can_access_template(tier: Optional[str], min_tier: Optional[str]) -> bool:
    """Platinum sees every template; gold sees gold templates only."""
    if tier == "platinum":
        return True
    if tier == "gold":
        return (min_tier or "gold") == "gold"
    return False


def site_limit(tier: Optional[str]) -> int:
    return TIER_LIMITS.get(tier or "", 0)


def can_create_site(ctx: MemberContext, site_count: int) -> bool:
    return ctx.subscribed and ctx.tier in TIER_LIMITS and site_count < site_limit(ctx.tier)


def list_sites(member) -> List[MemberSite]:
    return (
        MemberSite.query.filter_by(user_id=member.id)
        .order_by(MemberSite.created_at.desc())
        .all()
    )


def list_templates() -> List[SiteTemplate]:
    return (
        SiteTemplate.query.filter_by(is_active=True)
        .order_by(SiteTemplate.category.asc(), SiteTemplate.name.asc())
        .all()
    )


def load_site(member, site_id: str) -> MemberSite:
    site = MemberSite.query.filter_by(id=site_id, user_id=member.id).first()
    if site is None:
        raise NotFound("Site not found")
    return site


def _violates_slug(err: IntegrityError) -> bool:
    # sqlite: "UNIQUE constraint failed: member_sites.slug"; postgres: member_sites_slug_key;
    # mysql: "Duplicate entry ... for key 'slug'"
    constraint = getattr(getattr(err.orig, "diag", None), "constraint_name", None)
    if constraint:
        return "slug" in constraint
    text = str(err.orig).lower()
    return "slug" in text and ("unique" in text or "duplicate" in text)


def _commit_site(site: MemberSite) -> MemberSite:
    try:
        db.session.commit()
    except IntegrityError as e:
        db.session.rollback()
        current_app.logger.warning(f"Site save rejected for {site.id}: {e.orig}")
        if _violates_slug(e):
            raise ValidationError(DUPLICATE_SLUG_MESSAGE) from e
        raise
    return site


def create_site(ctx: MemberContext, name: str, template_id: Optional[str] = None,
                slug: Optional[str] = None) -> MemberSite:
    """
    Create a draft site for the member in ``ctx``.

    Args:
        ctx: member context (tier and subscription gate creation)
        name: display name; also the slug source when ``slug`` is omitted
        template_id: optional template whose default blocks seed the site
        slug: explicit URL slug

    Returns:
        The new MemberSite.
    """
    if ctx.member is None:
        raise PermissionDenied("Sign in to create a site")
    if name is not None and not isinstance(name, str):
        raise ValidationError("Site name must be text")
    name = (name or "").strip()
    if not name:
        raise ValidationError("Site name is required")

    count = MemberSite.query.filter_by(user_id=ctx.member_id).count()
    if not can_create_site(ctx, count):
        if not ctx.subscribed or ctx.tier not in TIER_LIMITS:
            raise TierLimitReached("Atelier requires a Gold or Platinum membership")
        raise TierLimitReached(f"Your {ctx.tier.title()} membership allows {site_limit(ctx.tier)} site(s)")

    blocks: List[Dict[str, Any]] = []
    if template_id:
        tpl = SiteTemplate.query.filter_by(id=template_id, is_active=True).first()
        if tpl is None:
            raise NotFound("Template not found")
        if not can_access_template(ctx.tier, tpl.min_tier):
            raise PermissionDenied("This template requires a Platinum membership")
        blocks = serialize_blocks(normalize_blocks(tpl.default_blocks))

    slug = slugify(slug or name)
    if not slug:
        raise ValidationError("Site URL must contain letters or numbers")
    if MemberSite.query.filter_by(slug=slug).first() is not None:
        raise ValidationError(DUPLICATE_SLUG_MESSAGE)

    site = MemberSite(
        user_id=ctx.member_id,
        name=name,
        slug=slug,
        template_id=template_id or None,
        status="draft",
        content=blocks,
        branding=DEFAULT_BRANDING.to_dict(),
        schema_version=SCHEMA_VERSION,
    )
    db.session.add(site)
    _commit_site(site)
    current_app.logger.info(f"Created site {site.id} ({slug}) for member {ctx.member_id}")
    return site


def update_site(site: MemberSite, **updates) -> MemberSite:
    """
    Persist a whole-field update. Content and branding are re-encoded from
    their decoded form, so the stored blobs are always normalized.
    """
    unknown = set(updates) - set(_UPDATABLE)
    if unknown:
        raise ValidationError(f"Unknown site fields: {', '.join(sorted(unknown))}")

    if "status" in updates and updates["status"] not in SITE_STATUSES:
        raise ValidationError("Invalid site status")
    if "name" in updates and not (isinstance(updates["name"], str) and updates["name"].strip()):
        raise ValidationError("Site name is required")
    if "slug" in updates:
        updates["slug"] = slugify(updates["slug"])
        if not updates["slug"]:
            raise ValidationError("Site URL must contain letters or numbers")

    for key, value in updates.items():
        if key == "content":
            value = serialize_blocks(normalize_blocks(value))
        elif key == "branding":
            value = normalize_branding(value).to_dict()
        setattr(site, key, value)

    site.schema_version = SCHEMA_VERSION
    site.updated_at = datetime.utcnow()
    if updates.get("status") == "published":
        site.published_at = datetime.utcnow()
    return _commit_site(site)


def publish_site(site: MemberSite) -> MemberSite:
    site = update_site(site, status="published")
    current_app.logger.info(f"Published site {site.id}")
    return site


def unpublish_site(site: MemberSite) -> MemberSite:
    site = update_site(site, status="draft")
    current_app.logger.info(f"Unpublished site {site.id}")
    return site


def delete_site(member, site_id: str) -> None:
    site = load_site(member, site_id)
    db.session.delete(site)
    db.session.commit()
    current_app.logger.info(f"Deleted site {site_id} for member {member.id}")
