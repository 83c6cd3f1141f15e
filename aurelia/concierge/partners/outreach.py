# concierge/partners/outreach.py
"""
Partner prospect pipeline and outreach.

Prospects move new -> contacted -> responded -> interested -> negotiating ->
converted, or drop out as declined / inactive. Outreach is either a single
email (template or free text, sent through ``send-email``) or a bulk invite
run (one ``partner-invite`` call per eligible prospect).
"""
from __future__ import annotations

import csv
import time
from dataclasses import dataclass, field
from datetime import date, datetime
from io import StringIO
from typing import Callable, Dict, Iterable, List, Optional

from flask import current_app

from concierge.errors import FunctionInvokeError, NotFound, ValidationError
from concierge.extensions import db
from concierge.functions_client import get_functions_client
from concierge.models_partners import OutreachLog, OutreachTemplate, PartnerProspect
from concierge.monitoring import capture_exception

PROSPECT_STATUSES = (
    "new", "contacted", "responded", "interested", "negotiating", "converted", "declined", "inactive",
)
CLOSED_STATUSES = frozenset({"converted", "declined"})
PRIORITIES = ("low", "medium", "high")

CATEGORY_LABELS = {
    "private_aviation": "Private Aviation",
    "yacht_charter": "Yacht Charter",
    "real_estate": "Real Estate",
    "concierge": "Concierge Services",
    "chauffeur": "Ground Transportation",
    "security": "Security",
    "events": "VIP Events",
    "wellness": "Wellness",
    "dining": "Fine Dining",
    "travel": "Travel",
    "shopping": "Personal Shopping",
    "collectibles": "Collectibles",
}

CSV_HEADER = ["Company", "Contact", "Email", "Category", "Status", "Priority", "Website", "Created"]


def category_label(category: str) -> str:
    return CATEGORY_LABELS.get(category, category or "")


# ===== Filtering =====

def _matches(value: Optional[str], wanted: Optional[str]) -> bool:
    return not wanted or wanted == "all" or value == wanted


def filter_prospects(prospects: Iterable[PartnerProspect], search: str = "", status: str = "all",
                     category: str = "all", priority: str = "all") -> List[PartnerProspect]:
    """Search matches company, contact or email (case-insensitive); other filters accept "all"."""
    needle = (search or "").strip().lower()
    out = []
    for p in prospects:
        if needle:
            haystack = (p.company_name or "", p.contact_name or "", p.email or "")
            if not any(needle in h.lower() for h in haystack):
                continue
        if _matches(p.status, status) and _matches(p.category, category) and _matches(p.priority, priority):
            out.append(p)
    return out


def eligible_for_bulk_outreach(prospects: Iterable[PartnerProspect], category: str = "all",
                               status: str = "all", priority: str = "all") -> List[PartnerProspect]:
    """Prospects with an email that are not converted or declined, matching the filters."""
    return [
        p for p in prospects
        if p.email
        and p.status not in CLOSED_STATUSES
        and _matches(p.category, category)
        and _matches(p.status, status)
        and _matches(p.priority, priority)
    ]


def prospect_stats(prospects: Iterable[PartnerProspect]) -> Dict[str, int]:
    prospects = list(prospects)
    stats = {"total": len(prospects)}
    for status in ("new", "contacted", "interested", "converted"):
        stats[status] = sum(1 for p in prospects if p.status == status)
    return stats


# ===== Templates =====

def render_template_text(text: str, prospect: PartnerProspect, sender: Optional[Dict[str, str]] = None) -> str:
    sender = sender or {}
    replacements = {
        "{{company_name}}": prospect.company_name or "",
        "{{contact_name}}": prospect.contact_name or "Partner Team",
        "{{sender_name}}": sender.get("name") or current_app.config.get("OUTREACH_SENDER_NAME", ""),
        "{{sender_email}}": sender.get("email") or current_app.config.get("OUTREACH_SENDER_EMAIL", ""),
        "{{service_type}}": category_label(prospect.category),
    }
    for key, value in replacements.items():
        text = (text or "").replace(key, value)
    return text


def render_template(template: OutreachTemplate, prospect: PartnerProspect) -> Dict[str, str]:
    return {
        "subject": render_template_text(template.subject, prospect),
        "body": render_template_text(template.body, prospect),
    }


def list_templates() -> List[OutreachTemplate]:
    return OutreachTemplate.query.filter_by(is_active=True).order_by(OutreachTemplate.name.asc()).all()


# ===== Prospects =====

def load_prospect(prospect_id: str) -> PartnerProspect:
    prospect = db.session.get(PartnerProspect, prospect_id)
    if prospect is None:
        raise NotFound("Prospect not found")
    return prospect


def list_prospects() -> List[PartnerProspect]:
    return PartnerProspect.query.order_by(PartnerProspect.created_at.desc()).all()


PROSPECT_FIELDS = (
    "company_name", "contact_name", "email", "phone", "website", "category", "subcategory",
    "coverage_regions", "description", "source", "priority", "notes",
)


def add_prospect(data: dict) -> PartnerProspect:
    company = (data.get("company_name") or "").strip()
    category = (data.get("category") or "").strip()
    if not company or not category:
        raise ValidationError("Company name and category are required")
    priority = data.get("priority") or "medium"
    if priority not in PRIORITIES:
        raise ValidationError(f"Unknown priority: {priority}")

    values = {k: data.get(k) for k in PROSPECT_FIELDS if data.get(k) not in (None, "")}
    values.update(company_name=company, category=category, priority=priority)
    if values.get("email"):
        values["email"] = values["email"].strip().lower()
    prospect = PartnerProspect(status="new", **values)
    db.session.add(prospect)
    db.session.commit()
    current_app.logger.info(f"Added partner prospect {prospect.id} ({company})")
    return prospect


def change_status(prospect: PartnerProspect, status: str, follow_up: Optional[date] = None) -> PartnerProspect:
    if status not in PROSPECT_STATUSES:
        raise ValidationError(f"Unknown status: {status}")
    prospect.status = status
    if follow_up is not None:
        prospect.follow_up_date = follow_up
    db.session.commit()
    return prospect


def outreach_history(prospect_id: str) -> List[OutreachLog]:
    return (
        OutreachLog.query.filter_by(prospect_id=prospect_id)
        .order_by(OutreachLog.sent_at.desc())
        .all()
    )


# ===== Sending =====

def send_outreach(prospect: PartnerProspect, subject: str, body: str) -> OutreachLog:
    """
    Log and send one outreach email, then mark the prospect contacted.

    Raises:
        ValidationError: empty subject or body
        FunctionInvokeError: ``send-email`` failed (the log row is kept)
    """
    subject = (subject or "").strip()
    if not subject or not (body or "").strip():
        raise ValidationError("Please complete the email")

    entry = OutreachLog(prospect_id=prospect.id, outreach_type="email", subject=subject, content=body)
    db.session.add(entry)
    prospect.status = "contacted"
    prospect.last_contacted_at = datetime.utcnow()
    db.session.commit()

    if prospect.email:
        get_functions_client().send_email(prospect.email, subject, body.replace("\n", "<br>"))
    current_app.logger.info(f"Outreach sent to prospect {prospect.id}")
    return entry


@dataclass
class BulkOutreachResult:
    total: int = 0
    sent: int = 0
    failed: int = 0
    failures: List[Dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"total": self.total, "sent": self.sent, "failed": self.failed, "failures": self.failures}


def invite_payload(prospect: PartnerProspect, custom_subject: str = None, custom_message: str = None) -> dict:
    payload = {
        "prospect_id": prospect.id,
        "company_name": prospect.company_name,
        "contact_email": prospect.email,
        "contact_name": prospect.contact_name,
        "category": prospect.category,
        "website": prospect.website,
        "description": prospect.description,
        "coverage_regions": prospect.coverage_regions or [],
    }
    if custom_message:
        payload["custom_subject"] = custom_subject or ""
        payload["custom_message"] = custom_message
    return payload


def bulk_outreach(prospects: Iterable[PartnerProspect], category: str = "all", status: str = "all",
                  priority: str = "all", custom_subject: str = None, custom_message: str = None,
                  delay: Optional[float] = None, sleep: Callable[[float], None] = time.sleep) -> BulkOutreachResult:
    """
    Send a partner invite to every eligible prospect.

    Sends are sequential with ``delay`` seconds between them
    (``OUTREACH_SEND_DELAY`` by default). A failed send is counted and the
    batch carries on.
    """
    targets = eligible_for_bulk_outreach(prospects, category=category, status=status, priority=priority)
    if not targets:
        raise ValidationError("No prospects match your filters.")
    if delay is None:
        delay = float(current_app.config.get("OUTREACH_SEND_DELAY", 0))

    client = get_functions_client()
    result = BulkOutreachResult(total=len(targets))
    for i, prospect in enumerate(targets):
        try:
            client.partner_invite(invite_payload(prospect, custom_subject, custom_message))
            result.sent += 1
        except FunctionInvokeError as e:
            result.failed += 1
            result.failures.append({"prospect_id": prospect.id, "company_name": prospect.company_name,
                                    "error": e.message})
            current_app.logger.warning(f"Partner invite to {prospect.company_name} failed: {e.message}")
            capture_exception(e, outreach={"prospect_id": prospect.id})
        if delay > 0 and i < len(targets) - 1:
            sleep(delay)

    current_app.logger.info(f"Bulk outreach: sent {result.sent} invitations, {result.failed} failed")
    return result


# ===== Export =====

def export_csv(prospects: Iterable[PartnerProspect]) -> str:
    sio = StringIO()
    writer = csv.writer(sio, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for p in prospects:
        writer.writerow([
            p.company_name,
            p.contact_name or "",
            p.email or "",
            category_label(p.category),
            p.status,
            p.priority,
            p.website or "",
            p.created_at.strftime("%Y-%m-%d") if p.created_at else "",
        ])
    return sio.getvalue()
