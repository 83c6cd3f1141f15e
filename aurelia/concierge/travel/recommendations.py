# concierge/travel/recommendations.py
"""
Travel DNA catalogs and the recommendation ranking.

Recommendations are the curated experiences for the member's archetype (or
the defaults) mixed with active partner services. Partner services start at
``PARTNER_BASE_SCORE`` and gain ``ACTIVITY_BOOST`` for every enabled activity
preference whose category map includes the service's category.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Dict, Iterable, List, Optional, Tuple

TRAVELER_ARCHETYPES = (
    ("epicurean", "The Epicurean", "Fine dining, wine regions, culinary experiences"),
    ("adventurer", "The Adventurer", "Expeditions, unique destinations, thrill-seeking"),
    ("culturalist", "The Culturalist", "Art, history, museums, local immersion"),
    ("wellness_seeker", "The Wellness Seeker", "Spas, retreats, health-focused travel"),
    ("collector", "The Collector", "Art, watches, wine, rare acquisitions"),
    ("social_maven", "The Social Maven", "Events, galas, exclusive gatherings"),
)

PACE_PREFERENCES = (
    ("relaxed", "Relaxed", "Unhurried, minimal scheduling"),
    ("moderate", "Balanced", "Mix of activities and leisure"),
    ("intensive", "Intensive", "Packed itineraries, maximize experiences"),
)

ACCOMMODATION_TIERS = (
    ("ultra_luxury", "Ultra-Luxury", "Aman, Four Seasons, Rosewood"),
    ("luxury", "Luxury", "Leading Hotels, Relais & Châteaux"),
    ("boutique", "Boutique", "Unique, design-forward properties"),
    ("private", "Private", "Villas, estates, yachts"),
)

CUISINE_OPTIONS = (
    "French", "Italian", "Japanese", "Mediterranean", "Farm-to-Table",
    "Michelin-Starred", "Wine-Focused", "Plant-Based", "Seafood", "Steakhouse",
)

ACTIVITY_OPTIONS = (
    ("private_aviation", "Private Aviation"),
    ("yacht_charters", "Yacht Charters"),
    ("art_collecting", "Art Collecting"),
    ("wine_experiences", "Wine Experiences"),
    ("golf", "Golf"),
    ("spa_wellness", "Spa & Wellness"),
    ("cultural_tours", "Cultural Tours"),
    ("adventure_sports", "Adventure Sports"),
    ("shopping", "Personal Shopping"),
    ("events_galas", "Events & Galas"),
)

# activity preference -> service categories it boosts
ACTIVITY_CATEGORIES: Dict[str, Tuple[str, ...]] = {
    "private_aviation": ("private_aviation",),
    "yacht_charters": ("yacht_charter",),
    "wine_experiences": ("dining",),
    "spa_wellness": ("wellness",),
    "cultural_tours": ("travel", "events_access"),
    "shopping": ("shopping",),
    "golf": ("wellness", "travel"),
    "events_galas": ("events_access",),
}

PARTNER_BASE_SCORE = 85
ACTIVITY_BOOST = 10
MAX_SCORE = 99
PARTNER_SERVICE_POOL = 10


@dataclass
class Recommendation:
    id: str
    title: str
    description: str
    category: str
    match_score: int
    price: Optional[str] = None
    location: Optional[str] = None
    is_partner_service: bool = False
    partner_id: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


def _exp(id, title, description, category, score, price, location) -> Recommendation:
    return Recommendation(id, title, description, category, score, price, location)


CURATED_EXPERIENCES: Dict[str, Tuple[Recommendation, ...]] = {
    "epicurean": (
        _exp("exp-1", "Private Dinner at Noma Tokyo", "Exclusive 12-course kaiseki experience with Chef René Redzepi",
             "dining", 98, "From $8,500/person", "Tokyo, Japan"),
        _exp("exp-2", "Burgundy Grand Cru Harvest", "Participate in the vendange at Domaine de la Romanée-Conti",
             "travel", 95, "From $45,000", "Burgundy, France"),
        _exp("exp-3", "Truffle Hunting in Alba", "Private truffle hunt with legendary trifolau and Michelin dinner",
             "dining", 92, "From $12,000", "Piedmont, Italy"),
    ),
    "adventurer": (
        _exp("exp-4", "Antarctic Expedition by Private Jet", "Fly to Antarctica and camp on the ice with expert guides",
             "private_aviation", 97, "From $125,000", "Antarctica"),
        _exp("exp-5", "Heli-Skiing in the Himalayas", "First descents on virgin powder with world champion guides",
             "travel", 94, "From $85,000", "Nepal"),
        _exp("exp-6", "Deep Ocean Submarine Dive", "Explore the Mariana Trench in a private research submersible",
             "travel", 91, "From $250,000", "Pacific Ocean"),
    ),
    "culturalist": (
        _exp("exp-7", "Private Vatican After-Hours", "Exclusive access to Sistine Chapel and Vatican archives",
             "events_access", 96, "From $75,000", "Vatican City"),
        _exp("exp-8", "Kyoto Temple Stay with Zen Master", "Week-long immersion in authentic temple life and meditation",
             "wellness", 93, "From $28,000", "Kyoto, Japan"),
        _exp("exp-9", "Private Archaeological Dig", "Join active excavation site with leading archaeologists",
             "travel", 90, "From $55,000", "Petra, Jordan"),
    ),
    "wellness_seeker": (
        _exp("exp-10", "SHA Wellness Clinic Longevity", "21-day comprehensive health optimization program",
             "wellness", 98, "From $95,000", "Alicante, Spain"),
        _exp("exp-11", "Bhutan Happiness Retreat", "Mindfulness journey through Himalayan monasteries",
             "wellness", 94, "From $45,000", "Bhutan"),
        _exp("exp-12", "Private Island Digital Detox", "Complete disconnection on your own Maldivian island",
             "wellness", 91, "From $150,000/week", "Maldives"),
    ),
    "collector": (
        _exp("exp-13", "Art Basel VIP Access Package", "Private previews, artist studio visits, and curator dinners",
             "events_access", 97, "From $125,000", "Basel/Miami/Hong Kong"),
        _exp("exp-14", "Patek Philippe Factory Tour", "Exclusive visit to Grand Complications workshop",
             "collectibles", 95, "By invitation", "Geneva, Switzerland"),
        _exp("exp-15", "Classic Car Concours Circuit", "VIP access to Pebble Beach, Goodwood & Villa d'Este",
             "events_access", 92, "From $85,000", "Global"),
    ),
    "social_maven": (
        _exp("exp-16", "Monaco Grand Prix Yacht Package", "Track-side superyacht with paddock access and driver meet",
             "yacht_charter", 98, "From $450,000", "Monaco"),
        _exp("exp-17", "Met Gala Preparation Suite", "Complete styling, atelier visits, and after-party access",
             "events_access", 95, "From $250,000", "New York"),
        _exp("exp-18", "Cannes Film Festival Insider", "Jury screenings, yacht parties, and celebrity dinners",
             "events_access", 93, "From $180,000", "Cannes, France"),
    ),
}

DEFAULT_RECOMMENDATIONS: Tuple[Recommendation, ...] = (
    _exp("def-1", "Bespoke Mediterranean Yacht Charter", "7-day journey through the Greek Islands on a 50m superyacht",
         "yacht_charter", 85, "From $280,000/week", "Mediterranean"),
    _exp("def-2", "Private Jet to Northern Lights", "Chase the aurora borealis across Scandinavia in ultimate comfort",
         "private_aviation", 82, "From $95,000", "Norway/Finland"),
    _exp("def-3", "Monaco Real Estate Preview", "First look at off-market properties in the Principality",
         "real_estate", 80, "Viewings available", "Monaco"),
)


def archetype_label(archetype: Optional[str]) -> Optional[str]:
    return next((label for key, label, _ in TRAVELER_ARCHETYPES if key == archetype), None)


def enabled_activities(activity_preferences: Optional[dict]) -> List[str]:
    return [k for k, enabled in (activity_preferences or {}).items() if enabled]


def format_price(min_price: Optional[int], currency: Optional[str]) -> Optional[str]:
    if not min_price:
        return None
    return f"From {currency or '$'}{min_price:,}"


def partner_recommendation(service, activities: Iterable[str] = ()) -> Recommendation:
    boost = sum(ACTIVITY_BOOST for a in activities if service.category in ACTIVITY_CATEGORIES.get(a, ()))
    return Recommendation(
        id=service.id,
        title=service.title,
        description=service.description or "",
        category=service.category,
        match_score=min(MAX_SCORE, PARTNER_BASE_SCORE + boost),
        price=format_price(service.min_price, service.currency),
        is_partner_service=True,
        partner_id=service.partner_id,
    )


def rank_recommendations(profile, partner_services: Iterable = (), limit: int = 6) -> List[Recommendation]:
    """
    Top ``limit`` recommendations for ``profile`` (may be None), highest match first.

    Ties keep catalog order ahead of partner services.
    """
    archetype = getattr(profile, "traveler_archetype", None)
    base = list(CURATED_EXPERIENCES.get(archetype or "", ())) or list(DEFAULT_RECOMMENDATIONS)
    activities = enabled_activities(getattr(profile, "activity_preferences", None))
    partners = [partner_recommendation(s, activities) for s in partner_services]
    combined = base + partners
    combined.sort(key=lambda r: r.match_score, reverse=True)
    return combined[:limit]
