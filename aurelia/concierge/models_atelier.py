# concierge/models_atelier.py
from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, String, Text

from concierge.extensions import db
from concierge.models import new_id

SITE_STATUSES = ("draft", "published", "archived")


class SiteTemplate(db.Model):
    __tablename__ = "site_templates"

    id = db.Column(String(36), primary_key=True, default=new_id)
    name = db.Column(String(150), nullable=False)
    category = db.Column(String(64), nullable=False, index=True)  # personal|family_office|foundation|event
    description = db.Column(Text, nullable=True)
    preview_image = db.Column(String(512), nullable=True)
    default_blocks = db.Column(JSON, nullable=True)
    min_tier = db.Column(String(16), nullable=False, default="gold")
    is_active = db.Column(Boolean, nullable=False, default=True)
    created_at = db.Column(DateTime, default=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "description": self.description,
            "preview_image": self.preview_image,
            "default_blocks": self.default_blocks or [],
            "min_tier": self.min_tier,
        }


class MemberSite(db.Model):
    __tablename__ = "member_sites"

    id = db.Column(String(36), primary_key=True, default=new_id)
    user_id = db.Column(String(36), db.ForeignKey("profiles.id", ondelete="CASCADE"), index=True, nullable=False)
    name = db.Column(String(255), nullable=False)
    slug = db.Column(String(255), unique=True, nullable=False)
    template_id = db.Column(String(36), db.ForeignKey("site_templates.id"), nullable=True)
    status = db.Column(String(16), nullable=False, default="draft")  # draft|published|archived

    # Persisted JSON blobs; decoded through concierge.atelier.blocks at load time
    content = db.Column(JSON, nullable=True)
    branding = db.Column(JSON, nullable=True)
    schema_version = db.Column(db.Integer, nullable=False, default=1)

    custom_domain = db.Column(String(255), nullable=True)
    analytics_enabled = db.Column(Boolean, nullable=False, default=False)
    published_at = db.Column(DateTime, nullable=True)
    created_at = db.Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "name": self.name,
            "slug": self.slug,
            "template_id": self.template_id,
            "status": self.status,
            "content": self.content or [],
            "branding": self.branding or {},
            "custom_domain": self.custom_domain,
            "analytics_enabled": bool(self.analytics_enabled),
            "published_at": self.published_at.isoformat() if self.published_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
