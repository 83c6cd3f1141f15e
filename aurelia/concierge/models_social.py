# concierge/models_social.py
from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, Integer, String, Text

from concierge.extensions import db
from concierge.models import new_id


class SocialAccount(db.Model):
    __tablename__ = "social_accounts"

    id = db.Column(String(36), primary_key=True, default=new_id)
    user_id = db.Column(String(36), db.ForeignKey("profiles.id", ondelete="CASCADE"), index=True, nullable=False)
    platform = db.Column(String(32), nullable=False)
    account_name = db.Column(String(255), nullable=False)
    account_id = db.Column(String(128), nullable=True)
    profile_url = db.Column(String(512), nullable=True)
    avatar_url = db.Column(String(512), nullable=True)
    is_active = db.Column(Boolean, nullable=False, default=True)
    created_at = db.Column(DateTime, default=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "platform": self.platform,
            "account_name": self.account_name,
            "account_id": self.account_id,
            "profile_url": self.profile_url,
            "avatar_url": self.avatar_url,
            "is_active": bool(self.is_active),
        }


class SocialCampaign(db.Model):
    __tablename__ = "social_campaigns"

    id = db.Column(String(36), primary_key=True, default=new_id)
    user_id = db.Column(String(36), db.ForeignKey("profiles.id", ondelete="CASCADE"), index=True, nullable=False)
    name = db.Column(String(255), nullable=False)
    description = db.Column(Text, nullable=True)
    status = db.Column(String(16), nullable=False, default="draft")  # draft|active|paused|completed|archived
    target_platforms = db.Column(JSON, nullable=True)
    target_audience = db.Column(JSON, nullable=True)
    budget_cents = db.Column(Integer, nullable=True)
    currency = db.Column(String(8), nullable=False, default="USD")
    start_date = db.Column(DateTime, nullable=True)
    end_date = db.Column(DateTime, nullable=True)
    content_templates = db.Column(JSON, nullable=True)
    campaign_type = db.Column(String(32), nullable=False, default="awareness")
    metrics = db.Column(JSON, nullable=True)
    created_at = db.Column(DateTime, default=datetime.utcnow)
    updated_at = db.Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "status": self.status,
            "target_platforms": self.target_platforms or [],
            "target_audience": self.target_audience or {},
            "budget_cents": self.budget_cents,
            "currency": self.currency,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "campaign_type": self.campaign_type,
            "metrics": self.metrics or {},
        }


class SocialPost(db.Model):
    __tablename__ = "social_posts"

    id = db.Column(String(36), primary_key=True, default=new_id)
    user_id = db.Column(String(36), db.ForeignKey("profiles.id", ondelete="CASCADE"), index=True, nullable=False)
    campaign_id = db.Column(String(36), db.ForeignKey("social_campaigns.id", ondelete="SET NULL"), nullable=True)
    account_id = db.Column(String(36), db.ForeignKey("social_accounts.id", ondelete="SET NULL"), nullable=True)
    platform = db.Column(String(32), nullable=False)
    content = db.Column(Text, nullable=True)
    media_urls = db.Column(JSON, nullable=True)
    hashtags = db.Column(JSON, nullable=True)
    scheduled_at = db.Column(DateTime, nullable=True, index=True)
    published_at = db.Column(DateTime, nullable=True)
    status = db.Column(String(16), nullable=False, default="draft", index=True)
    platform_post_id = db.Column(String(128), nullable=True)
    platform_url = db.Column(String(512), nullable=True)
    engagement_metrics = db.Column(JSON, nullable=True)
    error_message = db.Column(Text, nullable=True)
    created_at = db.Column(DateTime, default=datetime.utcnow)
    updated_at = db.Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "campaign_id": self.campaign_id,
            "account_id": self.account_id,
            "platform": self.platform,
            "content": self.content,
            "media_urls": self.media_urls or [],
            "hashtags": self.hashtags or [],
            "scheduled_at": self.scheduled_at.isoformat() if self.scheduled_at else None,
            "published_at": self.published_at.isoformat() if self.published_at else None,
            "status": self.status,
            "platform_post_id": self.platform_post_id,
            "platform_url": self.platform_url,
            "engagement_metrics": self.engagement_metrics or {},
            "error_message": self.error_message,
        }
