# concierge/models_partners.py
from datetime import datetime

from sqlalchemy import JSON, Boolean, Date, DateTime, String, Text

from concierge.extensions import db
from concierge.models import new_id


class PartnerProspect(db.Model):
    __tablename__ = "partner_prospects"

    id = db.Column(String(36), primary_key=True, default=new_id)
    company_name = db.Column(String(255), nullable=False)
    contact_name = db.Column(String(255), nullable=True)
    email = db.Column(String(255), nullable=True, index=True)
    phone = db.Column(String(64), nullable=True)
    website = db.Column(String(512), nullable=True)
    category = db.Column(String(64), nullable=False, index=True)
    subcategory = db.Column(String(64), nullable=True)
    coverage_regions = db.Column(JSON, nullable=True)
    description = db.Column(Text, nullable=True)
    source = db.Column(String(64), nullable=True, default="manual")
    status = db.Column(String(16), nullable=False, default="new", index=True)
    priority = db.Column(String(16), nullable=False, default="medium")  # low|medium|high
    notes = db.Column(Text, nullable=True)
    last_contacted_at = db.Column(DateTime, nullable=True)
    follow_up_date = db.Column(Date, nullable=True)
    created_at = db.Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_name": self.company_name,
            "contact_name": self.contact_name,
            "email": self.email,
            "phone": self.phone,
            "website": self.website,
            "category": self.category,
            "subcategory": self.subcategory,
            "coverage_regions": self.coverage_regions or [],
            "description": self.description,
            "source": self.source,
            "status": self.status,
            "priority": self.priority,
            "notes": self.notes,
            "last_contacted_at": self.last_contacted_at.isoformat() if self.last_contacted_at else None,
            "follow_up_date": self.follow_up_date.isoformat() if self.follow_up_date else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class OutreachTemplate(db.Model):
    __tablename__ = "outreach_templates"

    id = db.Column(String(36), primary_key=True, default=new_id)
    name = db.Column(String(150), nullable=False)
    category = db.Column(String(64), nullable=True)
    subject = db.Column(String(255), nullable=False)
    body = db.Column(Text, nullable=False)
    variables = db.Column(JSON, nullable=True)
    is_active = db.Column(Boolean, nullable=False, default=True)
    created_at = db.Column(DateTime, default=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "subject": self.subject,
            "body": self.body,
            "variables": self.variables or [],
            "is_active": bool(self.is_active),
        }


class OutreachLog(db.Model):
    __tablename__ = "partner_outreach_logs"

    id = db.Column(String(36), primary_key=True, default=new_id)
    prospect_id = db.Column(
        String(36), db.ForeignKey("partner_prospects.id", ondelete="CASCADE"), index=True, nullable=False
    )
    outreach_type = db.Column(String(32), nullable=False, default="email")  # email|invite|call
    subject = db.Column(String(255), nullable=True)
    content = db.Column(Text, nullable=True)
    sent_at = db.Column(DateTime, default=datetime.utcnow, nullable=False)
    response_received = db.Column(Boolean, nullable=False, default=False)
    response_notes = db.Column(Text, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "prospect_id": self.prospect_id,
            "outreach_type": self.outreach_type,
            "subject": self.subject,
            "content": self.content,
            "sent_at": self.sent_at.isoformat() if self.sent_at else None,
            "response_received": bool(self.response_received),
            "response_notes": self.response_notes,
        }
