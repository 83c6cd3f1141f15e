# concierge/atelier/render.py
"""
Server-side Atelier preview.

``render_block`` dispatches a block to its section template; blocks of a
type the preview does not know get a labelled placeholder section instead
of an error. ``render_site`` wraps the rendered blocks in a page sized for
the requested viewport.
"""
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

from jinja2 import Environment, PackageLoader, select_autoescape
from markupsafe import Markup

from concierge.atelier.blocks import DEFAULT_BRANDING, SiteBlock, SiteBranding

VIEWPORTS = {"desktop": "100%", "tablet": "768px", "mobile": "375px"}

TEXT_PLACEHOLDER = "Your content will appear here. Use Orla AI to generate compelling copy."
DEFAULT_STATS = (
    {"value": "25+", "label": "Years Experience"},
    {"value": "$2B", "label": "Assets Managed"},
    {"value": "50+", "label": "Global Partners"},
)
GALLERY_PLACEHOLDERS = 6

_env: Optional[Environment] = None


def get_env() -> Environment:
    global _env
    if _env is None:
        _env = Environment(
            loader=PackageLoader("concierge", "templates"),
            autoescape=select_autoescape(["html"]),
            trim_blocks=True,
            lstrip_blocks=True,
        )
    return _env


def _s(value: Any, default: str = "") -> str:
    """Coerce a content value to display text."""
    if value is None:
        return default
    if isinstance(value, str):
        return value if value.strip() else default
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return default


def _dicts(value: Any) -> List[dict]:
    if not isinstance(value, (list, tuple)):
        return []
    return [v for v in value if isinstance(v, dict)]


def type_label(block_type: Any) -> str:
    if not isinstance(block_type, str) or not block_type:
        return "Unknown"
    return block_type.replace("-", " ").replace("_", " ").title()


# ---------------------------------------------------------------------
# Per-kind context builders
# ---------------------------------------------------------------------

def _hero(c: dict, block: SiteBlock, branding: SiteBranding, site_name: str) -> dict:
    return {
        "title": _s(c.get("title"), site_name or "Your Name"),
        "subtitle": _s(c.get("subtitle"), "Your story begins here"),
        "logo_url": branding.logo_url,
        "background_image": _s(c.get("backgroundImage") or c.get("background_image")) or None,
    }


def _text(c: dict, block: SiteBlock, branding: SiteBranding, site_name: str) -> dict:
    return {
        "heading": _s(c.get("heading") or c.get("title"), type_label(block.type)),
        "text": _s(c.get("text"), TEXT_PLACEHOLDER),
    }


def _event(c: dict, block: SiteBlock, branding: SiteBranding, site_name: str) -> dict:
    details = [
        ("Date", _s(c.get("date"), "To be announced")),
        ("Time", _s(c.get("time"))),
        ("Venue", _s(c.get("venue") or c.get("location"), "Venue to be announced")),
        ("Dress code", _s(c.get("dressCode") or c.get("dress_code"))),
    ]
    return {
        "title": _s(c.get("title"), "Event Details"),
        "details": [(k, v) for k, v in details if v],
        "text": _s(c.get("text")),
    }


def _rsvp(c: dict, block: SiteBlock, branding: SiteBranding, site_name: str) -> dict:
    deadline = _s(c.get("deadline"))
    default_msg = f"Kindly respond by {deadline}." if deadline else "Kindly let us know if you will attend."
    return {
        "title": _s(c.get("title"), "RSVP"),
        "text": _s(c.get("text"), default_msg),
        "button": _s(c.get("buttonText") or c.get("button_text"), "Respond"),
    }


def _gallery(c: dict, block: SiteBlock, branding: SiteBranding, site_name: str) -> dict:
    images = []
    raw = c.get("images")
    if isinstance(raw, (list, tuple)):
        for item in raw:
            if isinstance(item, str) and item:
                images.append({"url": item, "caption": ""})
            elif isinstance(item, dict) and _s(item.get("url")):
                images.append({"url": _s(item.get("url")), "caption": _s(item.get("caption"))})
    return {
        "title": _s(c.get("title"), "Gallery"),
        "images": images,
        "placeholders": [] if images else [f"Image {i}" for i in range(1, GALLERY_PLACEHOLDERS + 1)],
    }


def _contact(c: dict, block: SiteBlock, branding: SiteBranding, site_name: str) -> dict:
    return {
        "heading": _s(c.get("heading") or c.get("title"), "Get in Touch"),
        "email": _s(c.get("email"), "contact@example.com"),
        "phone": _s(c.get("phone")),
        "text": _s(c.get("text")),
    }


def _stats(c: dict, block: SiteBlock, branding: SiteBranding, site_name: str) -> dict:
    stats = [
        {"value": _s(s.get("value")), "label": _s(s.get("label"))}
        for s in _dicts(c.get("stats"))
        if _s(s.get("value")) or _s(s.get("label"))
    ]
    default_title = "Impact" if block.type == "impact" else "Achievements"
    return {"title": _s(c.get("title"), default_title), "stats": stats or list(DEFAULT_STATS)}


def _team(c: dict, block: SiteBlock, branding: SiteBranding, site_name: str) -> dict:
    members = [
        {"name": _s(m.get("name"), "Team Member"), "role": _s(m.get("role")), "bio": _s(m.get("bio"))}
        for m in _dicts(c.get("members"))
    ]
    if not members:
        members = [{"name": "Team Member", "role": "Role", "bio": ""} for _ in range(3)]
    return {"title": _s(c.get("title"), "Our Team"), "members": members}


def _items(c: dict, block: SiteBlock, branding: SiteBranding, site_name: str) -> dict:
    label = "Portfolio" if block.type == "portfolio" else "Initiatives"
    item_label = "Portfolio item" if block.type == "portfolio" else "Initiative"
    items = [
        {"title": _s(i.get("title"), item_label), "description": _s(i.get("description"))}
        for i in _dicts(c.get("items"))
    ]
    if not items:
        items = [{"title": f"{item_label} {n}", "description": ""} for n in range(1, 4)]
    return {"title": _s(c.get("title"), label), "items": items}


# block type -> (template, context builder)
_DISPATCH: Dict[str, tuple] = {
    "hero": ("block_hero.html", _hero),
    "bio": ("block_text.html", _text),
    "story": ("block_text.html", _text),
    "mission": ("block_text.html", _text),
    "philosophy": ("block_text.html", _text),
    "event-details": ("block_event.html", _event),
    "rsvp": ("block_rsvp.html", _rsvp),
    "gallery": ("block_gallery.html", _gallery),
    "contact": ("block_contact.html", _contact),
    "achievements": ("block_stats.html", _stats),
    "impact": ("block_stats.html", _stats),
    "team": ("block_team.html", _team),
    "initiatives": ("block_items.html", _items),
    "portfolio": ("block_items.html", _items),
}


def render_block(block: SiteBlock, index: int, branding: SiteBranding = DEFAULT_BRANDING,
                 site_name: str = "") -> Markup:
    """Render one block as an HTML section. Never raises on unexpected content."""
    content = block.content if isinstance(block.content, dict) else {}
    kind = block.type if isinstance(block.type, str) else None
    template_name, build = _DISPATCH.get(kind, ("block_placeholder.html", None))
    if build is None:
        ctx: Dict[str, Any] = {"label": f"{type_label(block.type)} Block"}
    else:
        ctx = build(content, block, branding, site_name)
    html = get_env().get_template(f"atelier/{template_name}").render(
        block=block, index=index, branding=branding, **ctx
    )
    return Markup(html)


def render_site(name: str, blocks: Iterable[SiteBlock], branding: SiteBranding = DEFAULT_BRANDING,
                view_mode: str = "desktop") -> str:
    """Render the whole preview document for a viewport (desktop, tablet or mobile)."""
    if view_mode not in VIEWPORTS:
        view_mode = "desktop"
    ordered = sorted(blocks, key=lambda b: b.order)
    sections = [render_block(b, i, branding, name) for i, b in enumerate(ordered)]
    return get_env().get_template("atelier/site.html").render(
        site_name=name,
        sections=sections,
        branding=branding,
        view_mode=view_mode,
        viewport_width=VIEWPORTS[view_mode],
    )
