# hopelink/services/scoring.py
"""
Weighted-sum compatibility scoring.

Feature functions return a float in [0, 1], or None when an input they need is
missing. The pair scorers turn None into the documented neutral value and
record the criterion in ``ScoreCard.missing`` so data-quality gaps stay visible.
"""
from dataclasses import dataclass, field, asdict
from math import radians, sin, cos, asin, sqrt, exp
from typing import Dict, Iterable, List, Optional

from loguru import logger

from hopelink.schemas import MatchingParameters

EARTH_RADIUS_KM = 6371.0
NEUTRAL = 0.5
VOLUNTEER_ITEM_NEUTRAL = 0.7

CRITERIA = (
    "geographic_proximity",
    "item_compatibility",
    "urgency_alignment",
    "user_reliability",
    "delivery_compatibility",
)

CRITERIA_LABELS = {
    "geographic_proximity": "Close Location",
    "item_compatibility": "Perfect Item Match",
    "urgency_alignment": "Urgency Match",
    "user_reliability": "High Reliability",
    "delivery_compatibility": "Delivery Match",
}

URGENCY_LEVELS = {"low": 1, "medium": 2, "high": 3, "critical": 4}

RELATED_CATEGORIES = {
    "food": {"groceries", "meals"},
    "clothing": {"accessories", "shoes"},
    "electronics": {"appliances", "gadgets"},
    "furniture": {"home_goods", "decor"},
}

PERISHABLE_CATEGORIES = {"food", "groceries", "meals"}

COMPATIBLE_MODES = {
    "volunteer": {"pickup", "direct"},
    "pickup": {"volunteer"},
    "direct": {"volunteer"},
}

# profile preference label -> categories it covers
PREFERENCE_CATEGORIES = {
    "food & beverages": ["food", "groceries", "meals"],
    "clothing & accessories": ["clothing", "apparel"],
    "medical supplies": ["medical", "medicine"],
    "educational materials": ["educational", "books", "education"],
    "household items": ["household", "home"],
    "electronics & technology": ["electronics", "technology", "tech"],
    "toys & recreation": ["toys", "recreation"],
    "personal care items": ["personal care", "care"],
    "emergency supplies": ["emergency"],
    "financial assistance": ["financial"],
    "transportation": ["transportation"],
}

# item category -> volunteer delivery types
CATEGORY_DELIVERY_TYPES = {
    "food": ["food items"],
    "groceries": ["food items", "household items"],
    "meals": ["food items"],
    "clothing": ["clothing"],
    "electronics": ["electronics"],
    "furniture": ["furniture", "household items"],
    "medical": ["medical supplies"],
    "books": ["books educational"],
    "toys": ["toys"],
    "household": ["household items"],
    "educational": ["books educational"],
}

CATEGORY_BASE = 0.6
QUANTITY_SHARE = 0.4
TITLE_BONUS = 0.2
PREFERENCE_BOOST = 0.15


def _r4(x: float) -> float:
    return round(x, 4)

def clamp01(x: float) -> float:
    return max(0.0, min(1.0, float(x)))

def _norm(s: Optional[str]) -> str:
    return " ".join((s or "").lower().replace("/", " ").replace("-", " ").split())


# --------------------------------------------------
# Places
# --------------------------------------------------
@dataclass(frozen=True)
class Place:
    lat: Optional[float] = None
    lng: Optional[float] = None
    city: Optional[str] = None
    address: Optional[str] = None

    @property
    def has_coords(self) -> bool:
        return self.lat is not None and self.lng is not None

    def city_key(self) -> Optional[str]:
        city = _norm(self.city) or _norm(extract_city(self.address))
        return city or None

def extract_city(address: Optional[str]) -> Optional[str]:
    """
    "12 Rizal St, Barangay Carmen, Cagayan de Oro City, Misamis Oriental" -> "Cagayan de Oro City".
    Takes the second-to-last comma part for 3+ parts, the last one for 2 parts.
    """
    parts = [p.strip() for p in (address or "").split(",") if p.strip()]
    if len(parts) >= 3:
        return parts[-2]
    if len(parts) == 2:
        return parts[-1]
    return None

def donation_place(donation: dict) -> Place:
    return Place(donation.get("pickup_lat"), donation.get("pickup_lng"),
                 donation.get("pickup_city"), donation.get("pickup_location"))

def request_place(request: dict) -> Place:
    return Place(request.get("lat"), request.get("lng"), request.get("city"), request.get("location"))

def volunteer_place(volunteer: dict) -> Place:
    return Place(volunteer.get("lat"), volunteer.get("lng"), volunteer.get("city"), volunteer.get("address"))


# --------------------------------------------------
# Feature functions
# --------------------------------------------------
def haversine_km(lat1, lng1, lat2, lng2) -> float:
    dlat = radians(lat2 - lat1)
    dlng = radians(lng2 - lng1)
    a = sin(dlat/2)**2 + cos(radians(lat1)) * cos(radians(lat2)) * sin(dlng/2)**2
    return 2 * EARTH_RADIUS_KM * asin(sqrt(a))

def normalize_distance(distance_km: Optional[float], max_km: float = 50) -> float:
    """Linear decay: 0 km -> 1.0, max_km or more -> 0.0. Unknown distance is neutral."""
    if distance_km is None or distance_km != distance_km:
        return NEUTRAL
    if distance_km <= 0:
        return 1.0
    if distance_km >= max_km:
        return 0.0
    return _r4(1 - distance_km / max_km)

def geographic_proximity(a: Place, b: Place, max_km: float = 50) -> Optional[float]:
    """Great-circle decay when both sides have coordinates, otherwise exact city match (1.0/0.0)."""
    if a.has_coords and b.has_coords:
        return normalize_distance(haversine_km(a.lat, a.lng, b.lat, b.lng), max_km)
    ca, cb = a.city_key(), b.city_key()
    if ca and cb:
        return 1.0 if ca == cb else 0.0
    return None

def category_match(c1: Optional[str], c2: Optional[str]) -> Optional[float]:
    a, b = _norm(c1), _norm(c2)
    if not a or not b:
        return None
    if a == b:
        return 1.0
    for main, related in RELATED_CATEGORIES.items():
        if (a == main and b in related) or (b == main and a in related):
            return 0.6
    return 0.0

def quantity_ratio(offered: Optional[float], needed: Optional[float]) -> Optional[float]:
    """offered / needed capped at 1.0. No stated need counts as fully met."""
    if offered is None:
        return None
    if needed is None or needed <= 0:
        return 1.0 if offered > 0 else 0.0
    return _r4(clamp01(offered / needed))

def text_similarity(t1: Optional[str], t2: Optional[str]) -> float:
    s1 = set((t1 or "").lower().split())
    s2 = set((t2 or "").lower().split())
    if not s1 or not s2:
        return 0.0
    return len(s1 & s2) / len(s1 | s2)

def _preference_covers(preferences: Optional[Iterable[str]], category: Optional[str]) -> bool:
    cat = _norm(category)
    if not cat:
        return False
    for pref in preferences or []:
        p = _norm(pref)
        if not p:
            continue
        mapped = PREFERENCE_CATEGORIES.get(p, [])
        if any(m in cat for m in mapped) or cat in p or p in cat:
            return True
    return False

def item_compatibility(
    donation_category: Optional[str],
    request_category: Optional[str],
    donation_title: Optional[str] = None,
    request_title: Optional[str] = None,
    offered: Optional[float] = None,
    needed: Optional[float] = None,
    donor_types: Optional[Iterable[str]] = None,
    recipient_needs: Optional[Iterable[str]] = None,
) -> Optional[float]:
    """
    category * (0.6 + 0.4 * quantity_ratio) + 0.2 * title overlap + preference boosts, capped at 1.
    A mismatched category zeroes the core term; titles and preferences only add.
    """
    cat = category_match(donation_category, request_category)
    if cat is None:
        return None
    qty = quantity_ratio(offered, needed)
    if qty is None:
        qty = NEUTRAL
    score = cat * (CATEGORY_BASE + QUANTITY_SHARE * qty)
    score += TITLE_BONUS * text_similarity(donation_title, request_title)
    if cat > 0:
        if _preference_covers(donor_types, donation_category):
            score += PREFERENCE_BOOST
        if _preference_covers(recipient_needs, request_category):
            score += PREFERENCE_BOOST
    return _r4(clamp01(score))

def urgency_alignment(u1: Optional[str], u2: Optional[str]) -> float:
    l1 = URGENCY_LEVELS.get((u1 or "").lower(), 2)
    l2 = URGENCY_LEVELS.get((u2 or "").lower(), 2)
    return _r4(clamp01(exp(-abs(l1 - l2) / 1.5)))

def donation_urgency(donation: dict) -> str:
    return "high" if donation.get("is_urgent") else "medium"

def reliability(stats: Optional[dict]) -> Optional[float]:
    """0.7 * rating/5 + 0.3 * completion rate + up to 0.2 experience bonus."""
    if not stats:
        return None
    rating = stats.get("rating")
    if rating is None:
        rating = 4.0
    total = stats.get("total") or 0
    completed = stats.get("completed") or 0
    completion = completed / total if total > 0 else 0.0
    score = (rating / 5.0) * 0.7 + completion * 0.3 + min(total / 10, 0.2)
    return _r4(clamp01(score))

def delivery_compatibility(m1: Optional[str], m2: Optional[str]) -> Optional[float]:
    if not m1 or not m2:
        return None
    if m1 == m2:
        return 1.0
    return 0.7 if m2 in COMPATIBLE_MODES.get(m1, set()) else 0.3

def volunteer_item_compatibility(category: Optional[str], preferred_types: Optional[Iterable[str]]) -> Optional[float]:
    preferred = [_norm(p) for p in (preferred_types or []) if _norm(p)]
    cat = _norm(category)
    if not cat or not preferred:
        return None
    if any(t in preferred for t in CATEGORY_DELIVERY_TYPES.get(cat, [])):
        return 1.0
    if any(cat in p or p in cat for p in preferred):
        return 0.8
    if "household items" in preferred:
        return 0.7
    return 0.5

def volunteer_availability(active_deliveries: Optional[int]) -> Optional[float]:
    if active_deliveries is None:
        return None
    return _r4(max(0.0, 1 - active_deliveries * 0.2))


# --------------------------------------------------
# Aggregation
# --------------------------------------------------
@dataclass
class ScoreCard:
    score: float
    criteria_scores: Dict[str, float]
    weights: Dict[str, float]
    missing: List[str] = field(default_factory=list)
    match_reason: str = "Good match"

    def to_dict(self) -> dict:
        return asdict(self)

def match_reason(scores: Dict[str, float], weights: Dict[str, float], top: int = 2) -> str:
    contrib = [
        (c, scores.get(c, 0.0) * weights.get(c, 0.0))
        for c in CRITERIA if c in scores
    ]
    contrib = sorted((x for x in contrib if x[1] > 0), key=lambda x: (-x[1], CRITERIA.index(x[0])))
    if not contrib:
        return "Good match"
    return " & ".join(CRITERIA_LABELS.get(c, c) for c, _ in contrib[:top])

def aggregate(scores: Dict[str, float], weights: Dict[str, float], missing: Iterable[str] = ()) -> ScoreCard:
    """
    score = sum(weight_i * feature_i). Features are clamped to [0, 1]; the total is not,
    and weights are not re-normalized, so weights summing above 1 can yield scores above 1.
    """
    clamped = {c: clamp01(v) for c, v in scores.items()}
    total = sum(clamped.get(c, 0.0) * w for c, w in weights.items())
    return ScoreCard(
        score=_r4(total),
        criteria_scores=clamped,
        weights=dict(weights),
        missing=list(missing),
        match_reason=match_reason(clamped, weights),
    )

def contextual_weights(params: MatchingParameters, category: Optional[str], request_urgency: Optional[str]) -> Dict[str, float]:
    """
    Perishable items put the geographic weight at the perishable boost; otherwise critical
    requests put the urgency weight at the critical boost. Reliability takes what is left
    (at least 0.05). Weights are not normalized afterwards.
    """
    w = params.weights.model_dump()
    if _norm(category) in PERISHABLE_CATEGORIES and params.perishable_geographic_boost:
        boosted = "geographic_proximity"
        boost = params.perishable_geographic_boost
    elif (request_urgency or "").lower() == "critical" and params.critical_urgency_boost:
        boosted = "urgency_alignment"
        boost = params.critical_urgency_boost
    else:
        return w
    w[boosted] = boost
    others = sum(v for c, v in w.items() if c not in (boosted, "user_reliability"))
    w["user_reliability"] = max(0.05, 1.0 - (boost + others))
    return w

def _feature(name: str, value: Optional[float], missing: List[str], fallback: float = NEUTRAL) -> float:
    if value is None:
        missing.append(name)
        logger.debug("missing input for {}; using neutral {}", name, fallback)
        return fallback
    return value


# --------------------------------------------------
# Pair scorers
# --------------------------------------------------
def score_donation_for_request(donation: dict, request: dict, params: MatchingParameters) -> ScoreCard:
    missing: List[str] = []
    scores = {
        "geographic_proximity": _feature(
            "geographic_proximity",
            geographic_proximity(donation_place(donation), request_place(request), params.max_distance_km),
            missing,
        ),
        "item_compatibility": _feature(
            "item_compatibility",
            item_compatibility(
                donation.get("category"), request.get("category"),
                donation.get("title"), request.get("title"),
                donation.get("quantity"), request.get("quantity_needed"),
                donation.get("donation_types"), request.get("assistance_needs"),
            ),
            missing,
        ),
        "urgency_alignment": urgency_alignment(request.get("urgency"), donation_urgency(donation)),
        "user_reliability": _feature("user_reliability", reliability(donation.get("donor_stats")), missing),
        "delivery_compatibility": _feature(
            "delivery_compatibility",
            delivery_compatibility(request.get("delivery_mode"), donation.get("delivery_mode")),
            missing,
        ),
    }
    weights = contextual_weights(params, donation.get("category"), request.get("urgency"))
    return aggregate(scores, weights, missing)

def volunteer_proximity(task: dict, volunteer: dict, max_km: float = 50) -> Optional[float]:
    """Mean of the volunteer->pickup and volunteer->delivery leg scores that can be computed."""
    here = volunteer_place(volunteer)
    legs = [
        geographic_proximity(here, task.get("pickup") or Place(), max_km),
        geographic_proximity(here, task.get("delivery") or Place(), max_km),
    ]
    legs = [x for x in legs if x is not None]
    if not legs:
        return None
    return _r4(sum(legs) / len(legs))

def score_volunteer_for_task(task: dict, volunteer: dict, params: MatchingParameters) -> ScoreCard:
    missing: List[str] = []
    pref = volunteer.get("urgency_response")
    if not pref:
        missing.append("urgency_alignment")
    scores = {
        "geographic_proximity": _feature(
            "geographic_proximity", volunteer_proximity(task, volunteer, params.max_distance_km), missing
        ),
        "item_compatibility": _feature(
            "item_compatibility",
            volunteer_item_compatibility(task.get("category"), volunteer.get("preferred_delivery_types")),
            missing,
            fallback=VOLUNTEER_ITEM_NEUTRAL,
        ),
        "urgency_alignment": urgency_alignment(task.get("urgency"), pref),
        "user_reliability": _feature("user_reliability", reliability(volunteer.get("stats")), missing),
        "delivery_compatibility": _feature(
            "delivery_compatibility", volunteer_availability(volunteer.get("active_deliveries")), missing
        ),
    }
    return aggregate(scores, params.weights.model_dump(), missing)

def estimate_delivery_minutes(task: dict) -> int:
    """30 minutes base plus 2 per km between pickup and delivery (10 km assumed if unknown)."""
    a, b = task.get("pickup") or Place(), task.get("delivery") or Place()
    km = haversine_km(a.lat, a.lng, b.lat, b.lng) if (a.has_coords and b.has_coords) else 10
    return round(30 + km * 2)
