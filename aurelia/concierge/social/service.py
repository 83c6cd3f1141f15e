# concierge/social/service.py
"""
Social posts and campaigns.

Post lifecycle:

    draft -> scheduled -> publishing -> published
                                     -> failed -> scheduled (retry)
    draft / scheduled / failed -> cancelled

A scheduled post is published by a one-off job in the persistent job store
when the scheduler runs, and by the minutely sweep (``publish_due_posts``)
otherwise.
"""
from __future__ import annotations

from datetime import datetime
from typing import Dict, Iterable, List, Optional

from flask import current_app

from concierge.errors import FunctionInvokeError, NotFound, ValidationError
from concierge.extensions import db
from concierge.functions_client import get_functions_client
from concierge.models_social import SocialAccount, SocialCampaign, SocialPost

PLATFORM_LIMITS: Dict[str, int] = {
    "twitter": 280,
    "linkedin": 3000,
    "instagram": 2200,
    "facebook": 5000,
    "reddit": 10000,
    "threads": 500,
}

POST_TRANSITIONS: Dict[str, frozenset] = {
    "draft": frozenset({"scheduled", "publishing", "cancelled"}),
    "scheduled": frozenset({"draft", "publishing", "cancelled"}),
    "publishing": frozenset({"published", "failed"}),
    "failed": frozenset({"draft", "scheduled", "cancelled"}),
    "published": frozenset(),
    "cancelled": frozenset(),
}

CAMPAIGN_STATUSES = ("draft", "active", "paused", "completed", "archived")
CAMPAIGN_TYPES = ("awareness", "engagement", "conversion", "launch", "event")


def _job_id(post_id: str) -> str:
    return f"social-post-{post_id}"


def transition(post: SocialPost, status: str) -> SocialPost:
    if status not in POST_TRANSITIONS.get(post.status, frozenset()):
        raise ValidationError(f"Cannot move a {post.status} post to {status}")
    post.status = status
    return post


def format_hashtags(hashtags: Optional[Iterable[str]]) -> List[str]:
    tags = []
    for h in hashtags or []:
        h = str(h).strip()
        if h:
            tags.append(h if h.startswith("#") else f"#{h}")
    return tags


def compose_post_text(post: SocialPost) -> str:
    """Content plus hashtags, cut to the platform's length limit with ``...``."""
    text = post.content or ""
    tags = format_hashtags(post.hashtags)
    if tags:
        text += "\n\n" + " ".join(tags)
    limit = PLATFORM_LIMITS.get(post.platform)
    if limit and len(text) > limit:
        text = text[: limit - 3] + "..."
    return text


# ===== Posts =====

def load_post(member_id: str, post_id: str) -> SocialPost:
    post = SocialPost.query.filter_by(id=post_id, user_id=member_id).first()
    if post is None:
        raise NotFound("Post not found")
    return post


def list_posts(member_id: str, status: Optional[str] = None, campaign_id: Optional[str] = None) -> List[SocialPost]:
    q = SocialPost.query.filter_by(user_id=member_id)
    if status:
        q = q.filter_by(status=status)
    if campaign_id:
        q = q.filter_by(campaign_id=campaign_id)
    return q.order_by(SocialPost.created_at.desc()).all()


def create_post(member_id: str, platform: str, content: str = "", hashtags=None, media_urls=None,
                campaign_id: Optional[str] = None, account_id: Optional[str] = None) -> SocialPost:
    platform = (platform or "").strip().lower()
    if platform not in PLATFORM_LIMITS:
        raise ValidationError(f"Unsupported platform: {platform or 'none'}")
    if campaign_id and SocialCampaign.query.filter_by(id=campaign_id, user_id=member_id).first() is None:
        raise NotFound("Campaign not found")
    if account_id and SocialAccount.query.filter_by(id=account_id, user_id=member_id).first() is None:
        raise NotFound("Social account not found")

    post = SocialPost(
        user_id=member_id,
        platform=platform,
        content=content or "",
        hashtags=list(hashtags or []),
        media_urls=list(media_urls or []),
        campaign_id=campaign_id,
        account_id=account_id,
        status="draft",
    )
    db.session.add(post)
    db.session.commit()
    return post


def schedule_post(post: SocialPost, when: datetime) -> SocialPost:
    """
    Schedule ``post`` for ``when`` (naive UTC).

    With a running scheduler a one-off job is stored in the persistent job
    store; rescheduling replaces it.
    """
    if when is None:
        raise ValidationError("A publish time is required")
    if not (post.content or "").strip():
        raise ValidationError("Post content is empty")
    if post.status != "scheduled":
        transition(post, "scheduled")
    post.scheduled_at = when
    post.error_message = None
    db.session.commit()

    scheduler = getattr(current_app, "scheduler", None)
    if scheduler is not None:
        from concierge.scheduling import DeferredTask
        DeferredTask.schedule(
            scheduler,
            "concierge.scheduling:publish_scheduled_post",
            run_at=when,
            args=[post.id],
            job_id=_job_id(post.id),
            jobstore="persistent",
        )
    current_app.logger.info(f"Scheduled social post {post.id} for {when.isoformat()}")
    return post


def _drop_job(post: SocialPost) -> None:
    scheduler = getattr(current_app, "scheduler", None)
    if scheduler is None:
        return
    from concierge.scheduling import DeferredTask
    DeferredTask(scheduler, _job_id(post.id)).cancel()


def cancel_post(post: SocialPost) -> SocialPost:
    transition(post, "cancelled")
    db.session.commit()
    _drop_job(post)
    return post


def publish_post(post: SocialPost) -> SocialPost:
    """
    Publish now through the ``social-publish`` function.

    Empty content raises ValidationError and leaves the post untouched. A
    failing publish marks the post ``failed`` with the error message.
    """
    if not (post.content or "").strip():
        raise ValidationError("Post content is empty")
    if "publishing" not in POST_TRANSITIONS.get(post.status, frozenset()):
        raise ValidationError(f"Cannot move a {post.status} post to publishing")

    # Claim the post so the sweep and the one-off job cannot both publish it
    sources = [s for s, targets in POST_TRANSITIONS.items() if "publishing" in targets]
    claimed = (
        SocialPost.query.filter(SocialPost.id == post.id, SocialPost.status.in_(sources))
        .update({"status": "publishing"}, synchronize_session=False)
    )
    db.session.commit()
    if not claimed:
        db.session.refresh(post)
        raise ValidationError(f"Cannot move a {post.status} post to publishing")
    db.session.refresh(post)

    payload = {
        "post": {
            "id": post.id,
            "platform": post.platform,
            "content": post.content,
            "text": compose_post_text(post),
            "hashtags": format_hashtags(post.hashtags),
            "media_urls": post.media_urls or [],
            "account_id": post.account_id,
        }
    }
    try:
        result = get_functions_client().social_publish(payload)
    except FunctionInvokeError as e:
        post.status = "failed"
        post.error_message = e.message
        db.session.commit()
        current_app.logger.warning(f"Social post {post.id} failed: {e.message}")
        return post

    if result.get("success") is False:
        post.status = "failed"
        post.error_message = result.get("message") or "Publishing failed"
    else:
        post.status = "published"
        post.published_at = datetime.utcnow()
        post.platform_post_id = result.get("platformPostId") or result.get("platform_post_id")
        post.platform_url = result.get("platformUrl") or result.get("platform_url")
        post.error_message = None
    db.session.commit()
    current_app.logger.info(f"Social post {post.id} to {post.platform}: {post.status}")
    return post


def publish_scheduled(post_id: str) -> Optional[SocialPost]:
    """Job entry point: publish one post if it is still scheduled."""
    post = db.session.get(SocialPost, post_id)
    if post is None or post.status != "scheduled":
        return None
    if not (post.content or "").strip():
        post.status = "failed"
        post.error_message = "Post content is empty"
        db.session.commit()
        return post
    try:
        return publish_post(post)
    except ValidationError:
        # Another worker claimed it first
        return None


def publish_due_posts(now: Optional[datetime] = None) -> int:
    """Publish every scheduled post whose time has come. Returns the number published."""
    now = now or datetime.utcnow()
    due = (
        SocialPost.query.filter(SocialPost.status == "scheduled", SocialPost.scheduled_at <= now)
        .order_by(SocialPost.scheduled_at.asc())
        .all()
    )
    published = 0
    for post in due:
        result = publish_scheduled(post.id)
        if result is not None and result.status == "published":
            published += 1
    return published


# ===== Campaigns =====

def load_campaign(member_id: str, campaign_id: str) -> SocialCampaign:
    campaign = SocialCampaign.query.filter_by(id=campaign_id, user_id=member_id).first()
    if campaign is None:
        raise NotFound("Campaign not found")
    return campaign


def list_campaigns(member_id: str) -> List[SocialCampaign]:
    return (
        SocialCampaign.query.filter_by(user_id=member_id)
        .order_by(SocialCampaign.created_at.desc())
        .all()
    )


def create_campaign(member_id: str, name: str, description: str = None, campaign_type: str = "awareness",
                    target_platforms=None, target_audience=None, budget_cents: int = None,
                    start_date: datetime = None, end_date: datetime = None) -> SocialCampaign:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Campaign name is required")
    if campaign_type not in CAMPAIGN_TYPES:
        raise ValidationError(f"Unknown campaign type: {campaign_type}")
    platforms = [p for p in (target_platforms or []) if p in PLATFORM_LIMITS]
    if start_date and end_date and end_date < start_date:
        raise ValidationError("Campaign end date is before its start date")

    campaign = SocialCampaign(
        user_id=member_id,
        name=name,
        description=description,
        campaign_type=campaign_type,
        target_platforms=platforms,
        target_audience=target_audience or {},
        budget_cents=budget_cents,
        start_date=start_date,
        end_date=end_date,
        status="draft",
    )
    db.session.add(campaign)
    db.session.commit()
    return campaign


def set_campaign_status(campaign: SocialCampaign, status: str) -> SocialCampaign:
    if status not in CAMPAIGN_STATUSES:
        raise ValidationError(f"Unknown campaign status: {status}")
    campaign.status = status
    db.session.commit()
    return campaign


def campaign_summary(campaign: SocialCampaign) -> dict:
    counts = {}
    for post in SocialPost.query.filter_by(campaign_id=campaign.id).all():
        counts[post.status] = counts.get(post.status, 0) + 1
    data = campaign.to_dict()
    data["post_counts"] = counts
    return data
