# concierge/atelier/blocks.py
"""
Decoding of the persisted Atelier JSON blobs.

``member_sites.content`` is a list of blocks and ``member_sites.branding`` a
flat object. Both are decoded here, at the boundary, into ``SiteBlock`` and
``SiteBranding`` so the builder and renderer never see raw rows.
"""
from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field, replace
from typing import Any, Dict, Iterable, List, Mapping, Optional

SCHEMA_VERSION = 1

BLOCK_TYPES = (
    "hero",
    "bio",
    "story",
    "mission",
    "philosophy",
    "event-details",
    "rsvp",
    "gallery",
    "contact",
    "achievements",
    "impact",
    "team",
    "initiatives",
    "portfolio",
)
DEFAULT_BLOCK_TYPE = "hero"


@dataclass
class SiteBlock:
    id: str
    type: str
    content: Dict[str, Any] = field(default_factory=dict)
    order: int = 0

    def to_dict(self) -> dict:
        return {"id": self.id, "type": self.type, "content": dict(self.content), "order": self.order}


def _generated_id(index: int) -> str:
    return f"block-{index}-{int(time.time() * 1000)}"


def normalize_block(raw: Any, index: int) -> SiteBlock:
    """
    Decode one raw block.

    Every field besides id/type/order is block content. Rows written by the
    builder already nest their content under ``content``; that dict is used
    as-is, with any loose top-level fields folded in underneath it.
    """
    if not isinstance(raw, Mapping):
        raw = {}

    rest = {k: v for k, v in raw.items() if k not in ("id", "type", "order", "content")}
    nested = raw.get("content")
    if isinstance(nested, Mapping):
        content = {**rest, **nested}
    else:
        content = rest
        if nested is not None:
            content["content"] = nested

    block_id = raw.get("id")
    if isinstance(block_id, bool) or not isinstance(block_id, (str, int)) or not str(block_id).strip():
        block_id = _generated_id(index)
    else:
        block_id = str(block_id)

    block_type = raw.get("type")
    if block_type not in BLOCK_TYPES:
        block_type = DEFAULT_BLOCK_TYPE

    order = raw.get("order")
    if not isinstance(order, int) or isinstance(order, bool):
        order = index

    return SiteBlock(id=block_id, type=block_type, content=content, order=order)


def normalize_blocks(raw: Any) -> List[SiteBlock]:
    """Decode ``member_sites.content``; anything but a list decodes to no blocks."""
    if not isinstance(raw, (list, tuple)):
        return []
    return [normalize_block(item, i) for i, item in enumerate(raw)]


def serialize_blocks(blocks: Iterable[SiteBlock]) -> List[dict]:
    return [b.to_dict() for b in blocks]


# ---------------------------------------------------------------------
# Branding
# ---------------------------------------------------------------------

# persisted key -> attribute
_BRANDING_KEYS = {
    "primaryColor": "primary_color",
    "secondaryColor": "secondary_color",
    "accentColor": "accent_color",
    "fontHeading": "font_heading",
    "fontBody": "font_body",
    "logoUrl": "logo_url",
    "faviconUrl": "favicon_url",
}
_REQUIRED_BRANDING = ("primary_color", "secondary_color", "accent_color", "font_heading", "font_body")


@dataclass(frozen=True)
class SiteBranding:
    primary_color: str
    secondary_color: str
    accent_color: str
    font_heading: str
    font_body: str
    logo_url: Optional[str] = None
    favicon_url: Optional[str] = None

    def to_dict(self) -> dict:
        values = asdict(self)
        return {key: values[attr] for key, attr in _BRANDING_KEYS.items()}


DEFAULT_BRANDING = SiteBranding(
    primary_color="#1a1a1a",
    secondary_color="#d4af37",
    accent_color="#f5f5f0",
    font_heading="Playfair Display",
    font_body="Inter",
)


def _branding_fields(partial: Mapping) -> Dict[str, Any]:
    """Map camelCase or snake_case keys onto SiteBranding attributes; unknown keys are dropped."""
    attrs = set(_BRANDING_KEYS.values())
    out = {}
    for key, value in (partial or {}).items():
        attr = _BRANDING_KEYS.get(key, key)
        if attr in attrs:
            out[attr] = value
    return out


def normalize_branding(raw: Any) -> SiteBranding:
    """
    Decode ``member_sites.branding`` over DEFAULT_BRANDING.

    Colours and fonts that are missing or empty keep the default; logo and
    favicon are optional and taken as given.
    """
    if not isinstance(raw, Mapping):
        return DEFAULT_BRANDING
    given = _branding_fields(raw)
    values = {}
    for attr in _REQUIRED_BRANDING:
        v = given.get(attr)
        values[attr] = v if isinstance(v, str) and v.strip() else getattr(DEFAULT_BRANDING, attr)
    for attr in ("logo_url", "favicon_url"):
        v = given.get(attr)
        values[attr] = v if isinstance(v, str) and v.strip() else None
    return SiteBranding(**values)


def merge_branding(base: SiteBranding, partial: Optional[Mapping]) -> SiteBranding:
    """Shallow merge of a partial update; merging the same update twice equals merging it once."""
    fields = _branding_fields(partial or {})
    if not fields:
        return base
    return replace(base, **fields)
