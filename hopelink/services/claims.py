# hopelink/services/claims.py
"""
Claims, smart matches and volunteer assignment.

Every status write is a compare-and-set on (id, status, version) checked against
the central transition table. Multi-record writes run as a saga: each completed
step registers an undo, and a failure replays the undos newest-first before the
error propagates. Notifications are written last with a dedup key, so re-running
a half-finished claim never double-notifies.
"""
from dataclasses import dataclass, field, asdict
from datetime import datetime, timedelta
from typing import Awaitable, Callable, List, Optional

from loguru import logger

from hopelink.core.config import settings
from hopelink.core.errors import (
    ConflictError, DuplicateClaim, IncompatibleMatch, InvalidTransition, NotFoundError, PermissionDenied,
)
from hopelink.core.states import can_transition
from hopelink.core.timeutil import as_utc, utcnow
from hopelink.schemas import MatchingParameters
from hopelink.services.matching import (
    match_donation_to_requests, match_request_to_donations, match_volunteers_to_task,
    needs_volunteer, task_for_claim,
)
from hopelink.services.notifications import notify, notify_many
from hopelink.services.parameters import ParameterStore
from hopelink.services.scoring import item_compatibility, score_donation_for_request

MIN_SMART_MATCH_COMPATIBILITY = 0.3

Undo = Callable[[], Awaitable[object]]


# --------------------------------------------------
# Helpers
# --------------------------------------------------
def _updater(repo, kind: str):
    return {
        "donation": repo.update_donation,
        "request": repo.update_request,
        "claim": repo.update_claim,
    }[kind]

async def _transition(repo, kind: str, doc: dict, dst: str, extra: Optional[dict] = None) -> dict:
    src = doc.get("status")
    if not can_transition(kind, src, dst):
        raise InvalidTransition(kind, src, dst)
    saved = await _updater(repo, kind)(
        doc["id"],
        {**(extra or {}), "status": dst},
        expect={"status": src, "version": doc.get("version")},
    )
    if saved is None:
        raise ConflictError(f"{kind.capitalize()} {doc['id']} changed while moving {src} -> {dst}. Refresh and retry.")
    logger.debug("{} {}: {} -> {} (v{})", kind, doc["id"], src, dst, saved.get("version"))
    return saved

async def _compensate(undo: List[Undo]) -> None:
    for step in reversed(undo):
        try:
            await step()
        except Exception:
            logger.exception("compensation step failed; manual repair may be needed")

async def _must(getter, kind: str, ident: str) -> dict:
    doc = await getter(ident)
    if not doc:
        raise NotFoundError(kind, ident)
    return doc


# --------------------------------------------------
# Claim saga
# --------------------------------------------------
def _fulfillment(donation: dict) -> dict:
    mode = donation.get("delivery_mode") or "pickup"
    if mode == "pickup":
        return {
            "mode": "pickup",
            "status": "scheduled",
            "pickup_location": donation.get("pickup_location"),
            "pickup_instructions": donation.get("pickup_instructions"),
        }
    if mode == "direct":
        return {"mode": "direct", "status": "coordination_needed", "delivery_address": None}
    return {"mode": "volunteer", "status": "awaiting_volunteer"}

async def _follow_up(repo, claim: dict, donation: dict, auto_assign: bool) -> None:
    mode = (claim.get("fulfillment") or {}).get("mode", "pickup")
    base = {"claim_id": claim["id"], "donation_id": donation["id"]}
    key = f"claim:{claim['id']}"

    if mode == "pickup":
        await notify(repo, donation.get("donor_id"), "pickup_scheduled", "Pickup Scheduled",
                     "A recipient has claimed your donation and will arrange pickup. "
                     "Please coordinate the pickup time and location.",
                     {**base, "pickup_location": donation.get("pickup_location")},
                     dedup_key=f"{key}:pickup_scheduled")
        await notify(repo, claim["recipient_id"], "pickup_instructions", "Pickup Instructions",
                     "Your donation claim has been approved! Please coordinate with the donor to arrange pickup.",
                     {**base, "pickup_location": donation.get("pickup_location"),
                      "pickup_instructions": donation.get("pickup_instructions"),
                      "donor_id": donation.get("donor_id")},
                     dedup_key=f"{key}:pickup_instructions")
    elif mode == "direct":
        await notify(repo, donation.get("donor_id"), "direct_delivery_request", "Direct Delivery Requested",
                     "A recipient has claimed your donation and requested direct delivery. "
                     "Please coordinate the delivery details.",
                     {**base, "recipient_id": claim["recipient_id"]},
                     dedup_key=f"{key}:direct_delivery_request")
        await notify(repo, claim["recipient_id"], "direct_delivery_coordination", "Delivery Coordination Needed",
                     "Your direct delivery request has been approved! "
                     "Please coordinate with the donor to arrange delivery details.",
                     {**base, "donor_id": donation.get("donor_id")},
                     dedup_key=f"{key}:direct_delivery_coordination")
    else:
        await notify(repo, donation.get("donor_id"), "donation_claimed", "Donation Claimed",
                     "Your donation was claimed. A volunteer will be arranged for the delivery.",
                     base, dedup_key=f"{key}:donation_claimed")
        if auto_assign and claim.get("status") == "claimed":
            try:
                await auto_assign_volunteer(repo, claim["id"])
            except ConflictError as exc:
                logger.warning("auto-assign for claim {} skipped: {}", claim["id"], exc)

async def claim_donation(
    repo,
    donation_id: str,
    recipient_id: str,
    request_id: Optional[str] = None,
    source: str = "manual",
    auto_assign: bool = False,
) -> dict:
    """
    Claim a donation for a recipient (optionally against one of their requests).

    Steps: donation available -> claimed, insert claim, request open -> claimed,
    then follow-up notifications. A repeat call by the same recipient returns the
    existing claim and only re-runs the idempotent follow-up.

    A smart-matched donation is reserved for the requester of its matched request.
    That request is already claimed, so it only gets the claim id.
    """
    donation = await _must(repo.get_donation, "Donation", donation_id)

    existing = await repo.get_claim_for_donation(donation_id)
    if existing:
        if existing["recipient_id"] != recipient_id:
            raise DuplicateClaim(donation_id)
        if request_id and request_id != existing.get("request_id"):
            raise ConflictError(
                f"Donation {donation_id} was already claimed against request {existing.get('request_id')}"
            )
        logger.info("claim {} for donation {} already exists; resuming follow-up", existing["id"], donation_id)
        await _follow_up(repo, existing, donation, auto_assign)
        return existing

    held = False
    if donation.get("status") == "matched":
        matched_id = donation.get("matched_request_id")
        if request_id and request_id != matched_id:
            raise ConflictError(f"Donation {donation_id} is matched to request {matched_id}")
        request_id = matched_id

    request = None
    if request_id:
        request = await _must(repo.get_request, "Request", request_id)
        if donation.get("status") == "matched":
            if request.get("requester_id") != recipient_id:
                raise ConflictError(f"Donation {donation_id} is reserved for the requester of {request_id}")
            held = request.get("status") == "claimed" and request.get("matched_donation_id") == donation_id
        if not held and request.get("status") != "open":
            raise InvalidTransition("request", request.get("status"), "claimed")

    undo: List[Undo] = []
    prior = donation.get("status")
    claimed = await _transition(repo, "donation", donation, "claimed", {"claimed_by": recipient_id})
    undo.append(lambda: _transition(repo, "donation", claimed, prior, {"claimed_by": None}))
    try:
        claim = await repo.create_claim({
            "donation_id": donation_id,
            "recipient_id": recipient_id,
            "donor_id": donation.get("donor_id"),
            "request_id": request_id,
            "quantity_claimed": donation.get("quantity"),
            "status": "claimed",
            "source": source,
            "fulfillment": _fulfillment(donation),
            "tentative_volunteer_id": None,
            "acceptance_expires_at": None,
            "volunteer_id": None,
        })
        undo.append(lambda: repo.delete_claim(claim["id"]))
        if held:
            saved = await repo.update_request(request_id, {"claim_id": claim["id"]},
                                              expect={"status": "claimed", "version": request.get("version")})
            if saved is None:
                raise ConflictError(f"Request {request_id} changed while attaching claim {claim['id']}. Retry.")
        elif request:
            await _transition(repo, "request", request, "claimed", {"claim_id": claim["id"]})
    except Exception:
        logger.warning("claim of donation {} failed; rolling back", donation_id)
        await _compensate(undo)
        raise

    logger.info("donation {} claimed by {} ({}, claim {})", donation_id, recipient_id, source, claim["id"])
    await _follow_up(repo, claim, claimed, auto_assign)
    return await repo.get_claim(claim["id"]) or claim


# --------------------------------------------------
# Smart match
# --------------------------------------------------
async def create_smart_match(repo, request_id: str, donation_id: str, volunteer_id: Optional[str] = None,
                             params: Optional[MatchingParameters] = None) -> dict:
    request = await _must(repo.get_request, "Request", request_id)
    donation = await _must(repo.get_donation, "Donation", donation_id)

    compat = item_compatibility(
        donation.get("category"), request.get("category"),
        donation.get("title"), request.get("title"),
        donation.get("quantity"), request.get("quantity_needed"),
        donation.get("donation_types"), request.get("assistance_needs"),
    ) or 0.0
    if compat < MIN_SMART_MATCH_COMPATIBILITY:
        raise IncompatibleMatch(
            f"Donation {donation_id} is not compatible with request {request_id} "
            f"(item compatibility {compat:.2f} < {MIN_SMART_MATCH_COMPATIBILITY})"
        )

    params = params or await ParameterStore(repo).snapshot(settings.parameter_group)
    card = score_donation_for_request(donation, request, params)

    undo: List[Undo] = []
    matched = await _transition(repo, "donation", donation, "matched", {"matched_request_id": request_id})
    undo.append(lambda: _transition(repo, "donation", matched, "available", {"matched_request_id": None}))
    try:
        request = await _transition(repo, "request", request, "claimed", {"matched_donation_id": donation_id})
    except Exception:
        await _compensate(undo)
        raise

    logger.info("smart match {} <-> {} (score {})", donation_id, request_id, card.score)
    data = {"request_id": request_id, "donation_id": donation_id, "match_type": "smart_match"}
    key = f"smart_match:{donation_id}:{request_id}"
    await notify(repo, request.get("requester_id"), "system_alert", "Match Created!",
                 f"Your request \"{request.get('title')}\" has been matched with a donation.",
                 data, dedup_key=key)
    await notify(repo, donation.get("donor_id"), "system_alert", "Your Donation Was Matched!",
                 f"Your donation \"{donation.get('title')}\" was matched with someone in need.",
                 data, dedup_key=key)
    if volunteer_id:
        await notify(repo, volunteer_id, "volunteer_request", "New Delivery Opportunity",
                     f"A delivery for \"{donation.get('title')}\" needs a volunteer.",
                     data, dedup_key=key)

    return {
        "donation": matched,
        "request": request,
        "item_compatibility": compat,
        "score": card.score,
        "match_reason": card.match_reason,
    }


# --------------------------------------------------
# Threshold-gated side effects
# --------------------------------------------------
@dataclass
class AutoMatchOutcome:
    action: str  # none | disabled | auto_claimed | claim_conflict | notified | below_threshold
    params_version: int
    score: Optional[float] = None
    donation_id: Optional[str] = None
    request_id: Optional[str] = None
    claim_id: Optional[str] = None
    detail: Optional[str] = None
    suggestions: List[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        out = asdict(self)
        out.pop("suggestions")
        return out

async def _apply_thresholds(repo, params: MatchingParameters, donation: dict, request: dict,
                            score: float, suggestions: List[dict]) -> AutoMatchOutcome:
    outcome = AutoMatchOutcome(
        action="below_threshold", params_version=params.version, score=score,
        donation_id=donation["id"], request_id=request["id"], suggestions=suggestions,
    )
    if not params.auto_match_enabled:
        outcome.action = "disabled"
        return outcome

    if score >= params.auto_claim_threshold:
        try:
            claim = await claim_donation(
                repo, donation["id"], request["requester_id"], request_id=request["id"],
                source="auto_claim", auto_assign=needs_volunteer(donation, request),
            )
        except ConflictError as exc:
            logger.warning("auto-claim {} -> {} lost: {}", donation["id"], request["id"], exc)
            outcome.action = "claim_conflict"
            outcome.detail = str(exc)
            return outcome
        outcome.action = "auto_claimed"
        outcome.claim_id = claim["id"]
        return outcome

    if score >= params.auto_match_threshold:
        data = {"donation_id": donation["id"], "request_id": request["id"], "score": score}
        key = f"auto_match:{donation['id']}:{request['id']}"
        await notify(repo, request.get("requester_id"), "match_suggestion", "Possible Match Found",
                     f"\"{donation.get('title')}\" looks like a strong match for your request.",
                     data, dedup_key=key)
        await notify(repo, donation.get("donor_id"), "match_suggestion", "Possible Match Found",
                     f"Your donation \"{donation.get('title')}\" closely matches an open request.",
                     data, dedup_key=key)
        outcome.action = "notified"
    return outcome

async def evaluate_new_donation(repo, donation: dict, params: Optional[MatchingParameters] = None) -> AutoMatchOutcome:
    params = params or await ParameterStore(repo).snapshot(settings.parameter_group)
    matches = await match_donation_to_requests(repo, donation, params)
    if not matches:
        return AutoMatchOutcome(action="none", params_version=params.version, donation_id=donation["id"])
    top = matches[0]
    outcome = await _apply_thresholds(repo, params, donation, top["request"], top["score"], matches)
    logger.info("auto-match for donation {}: {} (score {})", donation["id"], outcome.action, outcome.score)
    return outcome

async def evaluate_new_request(repo, request: dict, params: Optional[MatchingParameters] = None) -> AutoMatchOutcome:
    params = params or await ParameterStore(repo).snapshot(settings.parameter_group)
    matches = await match_request_to_donations(repo, request, params)
    if not matches:
        return AutoMatchOutcome(action="none", params_version=params.version, request_id=request["id"])
    top = matches[0]
    outcome = await _apply_thresholds(repo, params, top["donation"], request, top["score"], matches)
    logger.info("auto-match for request {}: {} (score {})", request["id"], outcome.action, outcome.score)
    return outcome


# --------------------------------------------------
# Volunteer assignment
# --------------------------------------------------
async def auto_assign_volunteer(repo, claim_id: str, timeout_minutes: Optional[int] = None,
                                now: Optional[datetime] = None) -> dict:
    """Tentatively give the claim to the best-scoring volunteer; they must accept before the deadline."""
    claim = await _must(repo.get_claim, "Claim", claim_id)
    if not can_transition("claim", claim.get("status"), "awaiting_volunteer_acceptance"):
        raise InvalidTransition("claim", claim.get("status"), "awaiting_volunteer_acceptance")

    task = await task_for_claim(repo, claim_id)
    candidates = await match_volunteers_to_task(repo, task, max_results=3)
    if not candidates:
        logger.info("no volunteer available for claim {}", claim_id)
        return {"success": False, "reason": "no_candidates"}

    top = candidates[0]
    volunteer = top["volunteer"]
    minutes = timeout_minutes if timeout_minutes is not None else settings.acceptance_timeout_minutes
    expires_at = (now or utcnow()) + timedelta(minutes=minutes)

    updated = await _transition(repo, "claim", claim, "awaiting_volunteer_acceptance", {
        "tentative_volunteer_id": volunteer["id"],
        "acceptance_expires_at": expires_at,
    })

    key = f"claim:{claim_id}:offer:{volunteer['id']}:{updated['version']}"
    await notify(repo, volunteer["id"], "volunteer_assignment_request", "New Delivery Opportunity",
                 "You have been auto-selected for a delivery. Please accept within the time limit to confirm.",
                 {"claim_id": claim_id, "expires_at": expires_at.isoformat()}, dedup_key=key)
    await notify_many(repo, [claim.get("donor_id"), claim.get("recipient_id")],
                      "volunteer_assignment_pending", "Volunteer Assignment Pending",
                      "A volunteer has been selected and is confirming availability.",
                      {"claim_id": claim_id}, dedup_key=key)

    logger.info("claim {} offered to volunteer {} until {}", claim_id, volunteer["id"], expires_at)
    return {
        "success": True,
        "volunteer_id": volunteer["id"],
        "score": top["score"],
        "expires_at": expires_at,
        "claim": updated,
    }

async def _release_volunteer(repo, volunteer_id: str, attempts: int = 3) -> dict:
    """Decrement active_deliveries by one against the current version."""
    for _ in range(attempts):
        volunteer = await _must(repo.get_volunteer, "Volunteer", volunteer_id)
        current = volunteer.get("active_deliveries") or 0
        saved = await repo.update_volunteer(volunteer_id, {"active_deliveries": max(0, current - 1)},
                                            expect={"version": volunteer.get("version")})
        if saved is not None:
            return saved
    raise ConflictError(f"Volunteer {volunteer_id} kept changing while releasing a delivery slot")

async def accept_volunteer_assignment(repo, claim_id: str, volunteer_id: str,
                                      now: Optional[datetime] = None) -> dict:
    claim = await _must(repo.get_claim, "Claim", claim_id)
    if claim.get("status") != "awaiting_volunteer_acceptance":
        raise InvalidTransition("claim", claim.get("status"), "assigned")
    if claim.get("tentative_volunteer_id") != volunteer_id:
        raise PermissionDenied("This assignment is not reserved for this volunteer")

    deadline = as_utc(claim.get("acceptance_expires_at"))
    if deadline and deadline < (now or utcnow()):
        await _transition(repo, "claim", claim, "claimed",
                          {"tentative_volunteer_id": None, "acceptance_expires_at": None})
        logger.info("offer for claim {} expired before volunteer {} accepted", claim_id, volunteer_id)
        raise ConflictError("Assignment has expired")

    volunteer = await _must(repo.get_volunteer, "Volunteer", volunteer_id)
    active = volunteer.get("active_deliveries") or 0
    bumped = await repo.update_volunteer(volunteer_id, {"active_deliveries": active + 1},
                                         expect={"version": volunteer.get("version")})
    if bumped is None:
        raise ConflictError(f"Volunteer {volunteer_id} changed concurrently. Retry.")

    try:
        assigned = await _transition(repo, "claim", claim, "assigned", {
            "volunteer_id": volunteer_id,
            "tentative_volunteer_id": None,
            "acceptance_expires_at": None,
            "fulfillment": {**(claim.get("fulfillment") or {}), "status": "volunteer_assigned"},
        })
    except Exception:
        await _compensate([lambda: _release_volunteer(repo, volunteer_id)])
        raise

    await notify_many(repo, [claim.get("donor_id"), claim.get("recipient_id")],
                      "volunteer_assigned", "Volunteer Confirmed",
                      f"{volunteer.get('name') or 'A volunteer'} accepted the delivery.",
                      {"claim_id": claim_id, "volunteer_id": volunteer_id},
                      dedup_key=f"claim:{claim_id}:assigned")
    logger.info("volunteer {} accepted claim {}", volunteer_id, claim_id)
    return assigned
