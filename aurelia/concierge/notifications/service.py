# concierge/notifications/service.py
from __future__ import annotations

import json
import logging
from typing import List, Optional

import redis
from flask import current_app

from concierge.extensions import db
from concierge.models import Notification

log = logging.getLogger(__name__)


def channel_for(member_id: str) -> str:
    return f"notifications:{member_id}"


def unread_count(member_id: str) -> int:
    return Notification.query.filter_by(user_id=member_id, is_read=False).count()


def publish_count(member_id: str) -> None:
    """Push the member's unread count on their change channel, when Redis is up."""
    client = getattr(current_app, "redis", None)
    if client is None:
        return
    try:
        client.publish(channel_for(member_id), json.dumps({"unread": unread_count(member_id)}))
    except redis.RedisError as e:
        log.warning("notification publish failed for %s: %s", member_id, e)


def notify(member_id: str, title: str, message: str = "", kind: str = "info",
           link: Optional[str] = None, data: Optional[dict] = None, commit: bool = True) -> Notification:
    n = Notification(user_id=member_id, title=title, message=message, kind=kind, link=link, data=data)
    db.session.add(n)
    if commit:
        db.session.commit()
        publish_count(member_id)
    return n


def list_notifications(member_id: str, limit: int = 50) -> List[Notification]:
    return (
        Notification.query.filter_by(user_id=member_id)
        .order_by(Notification.created_at.desc())
        .limit(limit)
        .all()
    )


def mark_read(member_id: str, notification_id: str) -> bool:
    n = Notification.query.filter_by(id=notification_id, user_id=member_id).first()
    if n is None:
        return False
    if not n.is_read:
        n.is_read = True
        db.session.commit()
        publish_count(member_id)
    return True


def mark_all_read(member_id: str) -> int:
    updated = (
        Notification.query.filter_by(user_id=member_id, is_read=False)
        .update({"is_read": True}, synchronize_session=False)
    )
    db.session.commit()
    if updated:
        publish_count(member_id)
    return updated
