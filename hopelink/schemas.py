from typing import Optional, List, Literal
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field

# --------------------------
# Shared literals
# --------------------------
Urgency = Literal["low", "medium", "high", "critical"]
DeliveryMode = Literal["pickup", "volunteer", "direct"]

class ReliabilityStats(BaseModel):
    rating: Optional[float] = Field(None, ge=0, le=5)
    completed: int = 0
    total: int = 0

# --------------------------
# Donations
# --------------------------
class DonationIn(BaseModel):
    donor_id: str
    title: str
    category: str
    quantity: float = Field(..., gt=0)
    pickup_location: Optional[str] = None
    pickup_city: Optional[str] = None
    pickup_lat: Optional[float] = Field(None, ge=-90, le=90)
    pickup_lng: Optional[float] = Field(None, ge=-180, le=180)
    is_urgent: bool = False
    delivery_mode: DeliveryMode = "pickup"
    pickup_instructions: Optional[str] = None
    expiration_date: Optional[datetime] = None
    donor_stats: Optional[ReliabilityStats] = None
    donation_types: List[str] = []

# --------------------------
# Requests
# --------------------------
class RequestIn(BaseModel):
    requester_id: str
    title: str
    category: str
    quantity_needed: float = Field(1, gt=0)
    urgency: Urgency = "medium"
    location: Optional[str] = None
    city: Optional[str] = None
    lat: Optional[float] = Field(None, ge=-90, le=90)
    lng: Optional[float] = Field(None, ge=-180, le=180)
    delivery_mode: Optional[DeliveryMode] = None
    assistance_needs: List[str] = []

# --------------------------
# Volunteers
# --------------------------
class VolunteerIn(BaseModel):
    name: str
    city: Optional[str] = None
    address: Optional[str] = None
    lat: Optional[float] = Field(None, ge=-90, le=90)
    lng: Optional[float] = Field(None, ge=-180, le=180)
    preferred_delivery_types: List[str] = []
    urgency_response: Optional[Urgency] = None
    stats: Optional[ReliabilityStats] = None
    active_deliveries: int = Field(0, ge=0)
    status: Literal["active", "inactive"] = "active"

# --------------------------
# Claims & matches
# --------------------------
class ClaimIn(BaseModel):
    recipient_id: str
    request_id: Optional[str] = None
    auto_assign: bool = False

class SmartMatchIn(BaseModel):
    request_id: str
    donation_id: str
    volunteer_id: Optional[str] = None

class AcceptAssignmentIn(BaseModel):
    volunteer_id: str

# --------------------------
# Matching parameters
# --------------------------
class MatchingWeights(BaseModel):
    model_config = ConfigDict(frozen=True)

    geographic_proximity: float = Field(0.30, ge=0)
    item_compatibility: float = Field(0.25, ge=0)
    urgency_alignment: float = Field(0.20, ge=0)
    user_reliability: float = Field(0.15, ge=0)
    delivery_compatibility: float = Field(0.10, ge=0)

class MatchingParameters(BaseModel):
    """Immutable snapshot of one parameter group. Weights are not required to sum to 1."""
    model_config = ConfigDict(frozen=True)

    parameter_group: str = "DONOR_RECIPIENT_VOLUNTEER"
    weights: MatchingWeights = MatchingWeights()
    auto_match_enabled: bool = False
    auto_match_threshold: float = 0.75
    auto_claim_threshold: float = 0.85
    max_distance_km: float = Field(50, gt=0)
    min_quantity_match_ratio: float = 0.8
    perishable_geographic_boost: Optional[float] = 0.35
    critical_urgency_boost: Optional[float] = 0.30
    version: int = 0
    updated_at: Optional[datetime] = None

class MatchingParametersUpdate(BaseModel):
    expected_version: int
    weights: Optional[MatchingWeights] = None
    auto_match_enabled: Optional[bool] = None
    auto_match_threshold: Optional[float] = Field(None, ge=0)
    auto_claim_threshold: Optional[float] = Field(None, ge=0)
    max_distance_km: Optional[float] = Field(None, gt=0)
    min_quantity_match_ratio: Optional[float] = Field(None, ge=0, le=1)
    perishable_geographic_boost: Optional[float] = Field(None, ge=0)
    critical_urgency_boost: Optional[float] = Field(None, ge=0)
