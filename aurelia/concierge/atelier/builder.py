# concierge/atelier/builder.py
from __future__ import annotations

import logging
import uuid
from typing import List, Mapping, Optional

from concierge.atelier import service
from concierge.atelier.blocks import (
    BLOCK_TYPES,
    SiteBlock,
    SiteBranding,
    merge_branding,
    normalize_blocks,
    normalize_branding,
    serialize_blocks,
)
from concierge.atelier.render import render_site
from concierge.errors import ValidationError
from concierge.models_atelier import MemberSite

log = logging.getLogger(__name__)

_BLOCK_FIELDS = ("type", "content", "order")


class SiteBuilder:
    """
    In-memory editing session over one MemberSite.

    Edits only touch the session; ``save()`` writes the whole name, content
    and branding back in one update. A failed save or publish leaves the
    session as it was, dirty flag included.
    """

    def __init__(self, site: MemberSite):
        self.site = site
        self.name: str = site.name
        self.blocks: List[SiteBlock] = normalize_blocks(site.content)
        self.branding: SiteBranding = normalize_branding(site.branding)
        self.selected_index: Optional[int] = None
        self.has_changes = False

    # ---------- editing ----------

    def _block_at(self, index: int) -> SiteBlock:
        if not isinstance(index, int) or isinstance(index, bool) or index < 0 or index >= len(self.blocks):
            raise ValidationError(f"No block at position {index}")
        return self.blocks[index]

    def update_block(self, index: int, updates: Mapping) -> SiteBlock:
        """Shallow-merge ``updates`` (type/content/order) into the block at ``index``."""
        block = self._block_at(index)
        unknown = set(updates) - set(_BLOCK_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown block fields: {', '.join(sorted(unknown))}")
        if "type" in updates and updates["type"] not in BLOCK_TYPES:
            raise ValidationError(f"Unknown block type: {updates['type']}")
        if "content" in updates and not isinstance(updates["content"], Mapping):
            raise ValidationError("Block content must be an object")
        if "order" in updates and (not isinstance(updates["order"], int) or isinstance(updates["order"], bool)):
            raise ValidationError("Block order must be an integer")

        for key, value in updates.items():
            setattr(block, key, dict(value) if key == "content" else value)
        self.has_changes = True
        return block

    def update_block_content(self, index: int, partial: Mapping) -> SiteBlock:
        block = self._block_at(index)
        return self.update_block(index, {"content": {**block.content, **dict(partial)}})

    def update_branding(self, updates: Mapping) -> SiteBranding:
        if not isinstance(updates, Mapping):
            raise ValidationError("Branding must be an object")
        self.branding = merge_branding(self.branding, updates)
        self.has_changes = True
        return self.branding

    def rename(self, name: str) -> None:
        if name is not None and not isinstance(name, str):
            raise ValidationError("Site name must be text")
        name = (name or "").strip()
        if not name:
            raise ValidationError("Site name is required")
        self.name = name
        self.has_changes = True

    def add_block(self, block_type: str, content: Optional[Mapping] = None) -> SiteBlock:
        if block_type not in BLOCK_TYPES:
            raise ValidationError(f"Unknown block type: {block_type}")
        index = len(self.blocks)
        block = SiteBlock(id=f"block-{index}-{uuid.uuid4().hex[:8]}", type=block_type,
                          content=dict(content or {}), order=index)
        self.blocks.append(block)
        self.selected_index = index
        self.has_changes = True
        return block

    def remove_block(self, index: int) -> SiteBlock:
        block = self._block_at(index)
        del self.blocks[index]
        self._reorder()
        if self.selected_index is not None and self.selected_index >= len(self.blocks):
            self.selected_index = len(self.blocks) - 1 if self.blocks else None
        self.has_changes = True
        return block

    def move_block(self, index: int, new_index: int) -> None:
        block = self._block_at(index)
        new_index = max(0, min(new_index, len(self.blocks) - 1))
        del self.blocks[index]
        self.blocks.insert(new_index, block)
        self._reorder()
        self.has_changes = True

    def _reorder(self) -> None:
        for i, b in enumerate(self.blocks):
            b.order = i

    def select_block(self, index: Optional[int]) -> None:
        if index is not None:
            self._block_at(index)
        self.selected_index = index

    def insert_generated_content(self, text: str) -> SiteBlock:
        """Put AI-generated copy into the selected block's text."""
        if self.selected_index is None:
            raise ValidationError("Select a block first")
        return self.update_block_content(self.selected_index, {"text": text})

    # ---------- persistence ----------

    def payload(self) -> dict:
        return {
            "name": self.name,
            "content": serialize_blocks(self.blocks),
            "branding": self.branding.to_dict(),
        }

    def save(self) -> MemberSite:
        self.site = service.update_site(self.site, **self.payload())
        self.has_changes = False
        log.info("Saved site %s", self.site.id)
        return self.site

    def publish(self) -> MemberSite:
        if self.has_changes:
            self.save()
        self.site = service.publish_site(self.site)
        return self.site

    def unpublish(self) -> MemberSite:
        self.site = service.unpublish_site(self.site)
        return self.site

    def preview(self, view_mode: str = "desktop") -> str:
        return render_site(self.name, self.blocks, self.branding, view_mode)
