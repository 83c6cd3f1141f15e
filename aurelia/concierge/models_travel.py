# concierge/models_travel.py
from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, Float, Integer, String, Text

from concierge.extensions import db
from concierge.models import new_id


class TravelDNAProfile(db.Model):
    __tablename__ = "travel_dna_profile"

    id = db.Column(String(36), primary_key=True, default=new_id)
    user_id = db.Column(String(36), db.ForeignKey("profiles.id", ondelete="CASCADE"), unique=True, nullable=False)
    traveler_archetype = db.Column(String(32), nullable=True)
    pace_preference = db.Column(String(16), nullable=True)
    accommodation_tier = db.Column(String(16), nullable=True)
    cuisine_affinities = db.Column(JSON, nullable=True)
    activity_preferences = db.Column(JSON, nullable=True)  # {"golf": true, ...}
    seasonal_patterns = db.Column(JSON, nullable=True)
    budget_comfort_zone = db.Column(JSON, nullable=True)
    special_requirements = db.Column(JSON, nullable=True)
    onboarding_completed = db.Column(Boolean, nullable=False, default=False)
    last_computed_at = db.Column(DateTime, default=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "traveler_archetype": self.traveler_archetype,
            "pace_preference": self.pace_preference,
            "accommodation_tier": self.accommodation_tier,
            "cuisine_affinities": self.cuisine_affinities or [],
            "activity_preferences": self.activity_preferences or {},
            "seasonal_patterns": self.seasonal_patterns or {},
            "budget_comfort_zone": self.budget_comfort_zone or {},
            "special_requirements": self.special_requirements or [],
            "onboarding_completed": bool(self.onboarding_completed),
            "last_computed_at": self.last_computed_at.isoformat() if self.last_computed_at else None,
        }


class UserPreference(db.Model):
    __tablename__ = "user_preferences"

    id = db.Column(String(36), primary_key=True, default=new_id)
    user_id = db.Column(String(36), db.ForeignKey("profiles.id", ondelete="CASCADE"), index=True, nullable=False)
    category = db.Column(String(64), nullable=False)
    preference_key = db.Column(String(128), nullable=False)
    preference_value = db.Column(JSON, nullable=True)
    confidence_score = db.Column(Float, nullable=False, default=0.5)
    source = db.Column(String(32), nullable=False, default="explicit")  # explicit|inferred
    updated_at = db.Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint("user_id", "category", "preference_key", name="uq_user_pref_key"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "category": self.category,
            "preference_key": self.preference_key,
            "preference_value": self.preference_value,
            "confidence_score": self.confidence_score,
            "source": self.source,
        }


class PartnerService(db.Model):
    __tablename__ = "partner_services"

    id = db.Column(String(36), primary_key=True, default=new_id)
    partner_id = db.Column(String(36), nullable=True, index=True)
    title = db.Column(String(255), nullable=False)
    description = db.Column(Text, nullable=True)
    category = db.Column(String(64), nullable=False, index=True)
    min_price = db.Column(Integer, nullable=True)
    max_price = db.Column(Integer, nullable=True)
    currency = db.Column(String(8), nullable=True)
    is_active = db.Column(Boolean, nullable=False, default=True)
    created_at = db.Column(DateTime, default=datetime.utcnow)


class DiscoveryServiceAnalytics(db.Model):
    __tablename__ = "discovery_service_analytics"

    id = db.Column(String(36), primary_key=True, default=new_id)
    user_id = db.Column(String(36), db.ForeignKey("profiles.id", ondelete="CASCADE"), index=True, nullable=False)
    service_id = db.Column(String(64), nullable=False)
    service_title = db.Column(String(255), nullable=True)
    event_type = db.Column(String(32), nullable=False, default="interest_click")
    match_score = db.Column(Integer, nullable=True)
    traveler_archetype = db.Column(String(32), nullable=True)
    created_at = db.Column(DateTime, default=datetime.utcnow, nullable=False)
