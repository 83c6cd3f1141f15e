# concierge/travel/service.py
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from concierge.errors import ValidationError
from concierge.extensions import db
from concierge.models_travel import DiscoveryServiceAnalytics, PartnerService, TravelDNAProfile, UserPreference
from concierge.travel.recommendations import (
    ACCOMMODATION_TIERS,
    PACE_PREFERENCES,
    PARTNER_SERVICE_POOL,
    TRAVELER_ARCHETYPES,
    Recommendation,
    rank_recommendations,
)

PROFILE_FIELDS = (
    "traveler_archetype", "pace_preference", "accommodation_tier", "cuisine_affinities",
    "activity_preferences", "seasonal_patterns", "budget_comfort_zone", "special_requirements",
    "onboarding_completed",
)

_CHOICES = {
    "traveler_archetype": {k for k, _, _ in TRAVELER_ARCHETYPES},
    "pace_preference": {k for k, _, _ in PACE_PREFERENCES},
    "accommodation_tier": {k for k, _, _ in ACCOMMODATION_TIERS},
}


def get_profile(member_id: str) -> Optional[TravelDNAProfile]:
    return TravelDNAProfile.query.filter_by(user_id=member_id).first()


def save_profile(member_id: str, data: dict) -> TravelDNAProfile:
    """Create or update the member's profile with the known fields in ``data``."""
    for key, allowed in _CHOICES.items():
        value = data.get(key)
        if value is not None and value not in allowed:
            raise ValidationError(f"Unknown {key.replace('_', ' ')}: {value}")
    if data.get("activity_preferences") is not None and not isinstance(data["activity_preferences"], dict):
        raise ValidationError("activity_preferences must be an object")

    profile = get_profile(member_id)
    if profile is None:
        profile = TravelDNAProfile(user_id=member_id)
        db.session.add(profile)
    for key in PROFILE_FIELDS:
        if key in data:
            setattr(profile, key, data[key])
    profile.last_computed_at = datetime.utcnow()
    db.session.commit()
    return profile


def complete_onboarding(member_id: str, data: dict) -> TravelDNAProfile:
    return save_profile(member_id, dict(data, onboarding_completed=True))


def list_preferences(member_id: str) -> List[UserPreference]:
    return UserPreference.query.filter_by(user_id=member_id).all()


def save_preference(member_id: str, category: str, key: str, value, source: str = "explicit") -> UserPreference:
    """Upsert one preference; explicit answers carry full confidence, inferred ones half."""
    if not category or not key:
        raise ValidationError("category and key are required")
    pref = UserPreference.query.filter_by(user_id=member_id, category=category, preference_key=key).first()
    if pref is None:
        pref = UserPreference(user_id=member_id, category=category, preference_key=key)
        db.session.add(pref)
    pref.preference_value = value
    pref.source = source
    pref.confidence_score = 1.0 if source == "explicit" else 0.5
    db.session.commit()
    return pref


def recommendations_for(member_id: str, limit: int = 6) -> List[Recommendation]:
    services = (
        PartnerService.query.filter_by(is_active=True)
        .order_by(PartnerService.created_at.asc())
        .limit(PARTNER_SERVICE_POOL)
        .all()
    )
    return rank_recommendations(get_profile(member_id), services, limit=limit)


def record_interest(member_id: str, service_id: str, service_title: str = None,
                    match_score: int = None) -> DiscoveryServiceAnalytics:
    if not service_id:
        raise ValidationError("service_id is required")
    profile = get_profile(member_id)
    event = DiscoveryServiceAnalytics(
        user_id=member_id,
        service_id=service_id,
        service_title=service_title,
        event_type="interest_click",
        match_score=match_score,
        traveler_archetype=profile.traveler_archetype if profile else None,
    )
    db.session.add(event)
    db.session.commit()
    return event
