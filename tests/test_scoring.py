import pytest

from hopelink.schemas import MatchingParameters, MatchingWeights
from hopelink.services.scoring import (
    Place, aggregate, category_match, contextual_weights, delivery_compatibility,
    estimate_delivery_minutes, extract_city, geographic_proximity, haversine_km,
    item_compatibility, match_reason, normalize_distance, quantity_ratio, reliability,
    score_donation_for_request, score_volunteer_for_task, text_similarity, urgency_alignment,
    volunteer_availability, volunteer_item_compatibility,
)

def _donation(**kw):
    doc = {
        "id": "d1",
        "title": "rice bags",
        "category": "clothing",
        "quantity": 5,
        "pickup_city": "Cebu City",
        "is_urgent": True,
        "delivery_mode": "pickup",
        "donor_stats": {"rating": 5, "completed": 10, "total": 10},
    }
    doc.update(kw)
    return doc

def _request(**kw):
    doc = {
        "id": "r1",
        "title": "rice bags",
        "category": "clothing",
        "quantity_needed": 5,
        "city": "Cebu City",
        "urgency": "high",
        "delivery_mode": "pickup",
    }
    doc.update(kw)
    return doc


# ---- distance
def test_haversine_one_degree_at_equator():
    assert haversine_km(0, 0, 0, 1) == pytest.approx(111.195, abs=0.01)

def test_normalize_distance():
    assert normalize_distance(0, 50) == 1.0
    assert normalize_distance(25, 50) == 0.5
    assert normalize_distance(60, 50) == 0.0
    assert normalize_distance(None, 50) == 0.5

def test_extract_city_from_address():
    assert extract_city("12 Rizal St, Cagayan de Oro City, Misamis Oriental") == "Cagayan de Oro City"
    assert extract_city("Poblacion, Dumaguete") == "Dumaguete"
    assert extract_city("Dumaguete") is None
    assert extract_city(None) is None

def test_geographic_proximity_city_fallback():
    assert geographic_proximity(Place(city="Cebu"), Place(address="1 A St, Cebu, Cebu Province")) == 1.0
    assert geographic_proximity(Place(city="Cebu"), Place(city="Manila")) == 0.0
    assert geographic_proximity(Place(city="Cebu"), Place()) is None

def test_geographic_proximity_prefers_coordinates():
    a = Place(lat=10.3, lng=123.9, city="Cebu")
    b = Place(lat=10.3, lng=123.9, city="Somewhere Else")
    assert geographic_proximity(a, b) == 1.0


# ---- items
def test_category_match():
    assert category_match("Food", "food") == 1.0
    assert category_match("food", "groceries") == 0.6
    assert category_match("meals", "food") == 0.6
    assert category_match("food", "clothing") == 0.0
    assert category_match(None, "food") is None

def test_quantity_ratio():
    assert quantity_ratio(5, 10) == 0.5
    assert quantity_ratio(20, 10) == 1.0
    assert quantity_ratio(3, None) == 1.0
    assert quantity_ratio(None, 10) is None

def test_text_similarity():
    assert text_similarity("rice bags", "rice bags") == 1.0
    assert text_similarity("rice bags", "rice") == 0.5
    assert text_similarity("", "rice") == 0.0

def test_item_compatibility_same_category_full_quantity():
    assert item_compatibility("food", "food", offered=10, needed=10) == 1.0

def test_item_compatibility_mismatch_is_near_zero():
    assert item_compatibility("food", "clothing", "canned goods", "winter jackets", 10, 10) == 0.0
    # preferences never rescue a category mismatch
    assert item_compatibility("food", "clothing", donor_types=["Food & Beverages"]) == 0.0

def test_item_compatibility_preference_boost_is_capped():
    score = item_compatibility("food", "groceries", offered=10, needed=10,
                               donor_types=["Food & Beverages"], recipient_needs=["Food & Beverages"])
    assert score == pytest.approx(0.9)
    assert item_compatibility("food", "food", "rice", "rice", 10, 10, ["Food & Beverages"]) == 1.0


# ---- urgency / reliability / delivery
def test_urgency_alignment():
    assert urgency_alignment("high", "high") == 1.0
    assert urgency_alignment("low", "critical") == pytest.approx(0.1353, abs=1e-4)
    assert urgency_alignment(None, "medium") == 1.0

def test_reliability():
    assert reliability(None) is None
    assert reliability({"rating": 5, "completed": 10, "total": 10}) == 1.0
    assert reliability({"rating": 2.5, "completed": 1, "total": 2}) == pytest.approx(0.7)
    assert reliability({"completed": 0, "total": 0}) == pytest.approx(0.56)

def test_delivery_compatibility():
    assert delivery_compatibility("pickup", "pickup") == 1.0
    assert delivery_compatibility("volunteer", "pickup") == 0.7
    assert delivery_compatibility("pickup", "direct") == 0.3
    assert delivery_compatibility("pickup", None) is None

def test_volunteer_features():
    assert volunteer_item_compatibility("food", ["Food Items"]) == 1.0
    assert volunteer_item_compatibility("food", ["household items"]) == 0.7
    assert volunteer_item_compatibility("electronics", ["books educational"]) == 0.5
    assert volunteer_item_compatibility("food", []) is None
    assert volunteer_availability(1) == 0.8
    assert volunteer_availability(5) == 0.0


# ---- aggregation
def test_aggregate_does_not_clamp_total_or_normalize():
    scores = {c: 1.0 for c in MatchingWeights().model_dump()}
    card = aggregate(scores, {c: 0.5 for c in scores})
    assert card.score == 2.5

def test_aggregate_clamps_features():
    card = aggregate({"geographic_proximity": 3.0}, {"geographic_proximity": 0.5})
    assert card.criteria_scores["geographic_proximity"] == 1.0
    assert card.score == 0.5

def test_match_reason_uses_top_two_contributors():
    weights = MatchingWeights().model_dump()
    scores = {c: 0.0 for c in weights}
    scores.update(geographic_proximity=1.0, item_compatibility=1.0)
    assert match_reason(scores, weights) == "Close Location & Perfect Item Match"
    assert match_reason({c: 0.0 for c in weights}, weights) == "Good match"

def test_contextual_weights_perishable_and_critical():
    params = MatchingParameters()
    w = contextual_weights(params, "food", "low")
    assert w["geographic_proximity"] == 0.35
    assert w["user_reliability"] == pytest.approx(0.1)

    w = contextual_weights(params, "clothing", "critical")
    assert w["urgency_alignment"] == 0.30
    assert w["user_reliability"] == pytest.approx(0.05)

    assert contextual_weights(params, "clothing", "high") == params.weights.model_dump()


# ---- pair scorers
def test_same_city_food_scores_full_geo_and_item():
    d = _donation(category="food", quantity=10)
    r = _request(category="food", quantity_needed=10)
    card = score_donation_for_request(d, r, MatchingParameters())
    assert card.criteria_scores["item_compatibility"] == 1.0
    assert card.criteria_scores["geographic_proximity"] == 1.0

def test_mismatch_leaves_other_criteria_to_drive_score():
    d = _donation(category="food", title="canned goods", pickup_city="Cebu City")
    r = _request(category="clothing", title="winter jackets", city="Manila")
    params = MatchingParameters()
    card = score_donation_for_request(d, r, params)
    assert card.criteria_scores["item_compatibility"] == 0.0
    assert card.criteria_scores["geographic_proximity"] == 0.0
    w = contextual_weights(params, "food", "high")
    expected = w["urgency_alignment"] + w["user_reliability"] + w["delivery_compatibility"]
    assert card.score == pytest.approx(expected, abs=1e-4)

def test_weights_above_one_can_exceed_one():
    params = MatchingParameters(weights=MatchingWeights(**{
        "geographic_proximity": 0.5, "item_compatibility": 0.5, "urgency_alignment": 0.5,
        "user_reliability": 0.5, "delivery_compatibility": 0.5,
    }))
    card = score_donation_for_request(_donation(), _request(), params)
    assert card.score == 2.5

def test_missing_inputs_are_neutral_and_reported():
    d = _donation(donor_stats=None, pickup_city=None)
    r = _request(city=None, delivery_mode=None)
    card = score_donation_for_request(d, r, MatchingParameters())
    assert set(card.missing) == {"geographic_proximity", "user_reliability", "delivery_compatibility"}
    assert card.criteria_scores["user_reliability"] == 0.5
    assert card.criteria_scores["geographic_proximity"] == 0.5

def test_scores_are_bounded_and_deterministic():
    params = MatchingParameters()
    pairs = [
        (_donation(), _request()),
        (_donation(category="food", pickup_lat=10.3, pickup_lng=123.9),
         _request(category="groceries", lat=10.5, lng=124.0, urgency="critical")),
        (_donation(category="electronics", delivery_mode="volunteer", donor_stats=None),
         _request(category="furniture", urgency="low", delivery_mode="direct")),
    ]
    for d, r in pairs:
        first = score_donation_for_request(d, r, params)
        again = score_donation_for_request(d, r, params)
        assert first == again
        assert all(0.0 <= v <= 1.0 for v in first.criteria_scores.values())

def test_volunteer_scoring_uses_both_legs():
    task = {
        "category": "food",
        "urgency": "high",
        "pickup": Place(lat=10.30, lng=123.90),
        "delivery": Place(lat=10.30, lng=123.90),
    }
    near = {"id": "v1", "lat": 10.30, "lng": 123.90, "preferred_delivery_types": ["food items"],
            "urgency_response": "high", "stats": {"rating": 5, "completed": 4, "total": 4},
            "active_deliveries": 0}
    far = {**near, "id": "v2", "lat": 14.6, "lng": 121.0}
    params = MatchingParameters()
    assert score_volunteer_for_task(task, near, params).score > score_volunteer_for_task(task, far, params).score
    assert score_volunteer_for_task(task, far, params).criteria_scores["geographic_proximity"] == 0.0

def test_estimate_delivery_minutes():
    assert estimate_delivery_minutes({"pickup": Place(), "delivery": Place()}) == 50
    same = {"pickup": Place(lat=10.3, lng=123.9), "delivery": Place(lat=10.3, lng=123.9)}
    assert estimate_delivery_minutes(same) == 30
