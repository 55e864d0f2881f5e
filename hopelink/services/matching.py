# hopelink/services/matching.py
from datetime import datetime
from typing import Dict, List, Optional, Union

from loguru import logger

from hopelink.core.config import settings
from hopelink.core.errors import NotFoundError
from hopelink.core.timeutil import as_utc, utcnow
from hopelink.schemas import MatchingParameters
from hopelink.services.parameters import ParameterStore
from hopelink.services.scoring import (
    PERISHABLE_CATEGORIES, URGENCY_LEVELS, Place,
    donation_place, donation_urgency, request_place,
    estimate_delivery_minutes, score_donation_for_request, score_volunteer_for_task,
)

DONOR_SHARE = 0.6
VOLUNTEER_SHARE = 0.4


def _entry(key: str, candidate: dict, card) -> dict:
    return {
        key: candidate,
        "score": card.score,
        "criteria_scores": card.criteria_scores,
        "missing": card.missing,
        "match_reason": card.match_reason,
    }

def _sorted(entries: List[dict], key: str, max_results: Optional[int]) -> List[dict]:
    # ties broken by id so the same inputs always give the same order
    out = sorted(entries, key=lambda e: (-e["score"], str(e[key].get("id", ""))))
    return out[:max_results] if max_results is not None else out

async def _snapshot(repo, params: Optional[MatchingParameters]) -> MatchingParameters:
    if params is not None:
        return params
    return await ParameterStore(repo).snapshot(settings.parameter_group)


# --------------------------------------------------
# Pure rankers (one snapshot, every candidate scored)
# --------------------------------------------------
def rank_donations_for_request(request: dict, donations: List[dict], params: MatchingParameters,
                               max_results: Optional[int] = 10) -> List[dict]:
    entries = [
        _entry("donation", d, score_donation_for_request(d, request, params))
        for d in donations if d
    ]
    return _sorted(entries, "donation", max_results)

def rank_requests_for_donation(donation: dict, requests: List[dict], params: MatchingParameters,
                               max_results: Optional[int] = 5) -> List[dict]:
    entries = [
        _entry("request", r, score_donation_for_request(donation, r, params))
        for r in requests if r
    ]
    return _sorted(entries, "request", max_results)

def rank_volunteers_for_task(task: dict, volunteers: List[dict], params: MatchingParameters,
                             max_results: Optional[int] = 5) -> List[dict]:
    entries = [
        _entry("volunteer", v, score_volunteer_for_task(task, v, params))
        for v in volunteers if v
    ]
    return _sorted(entries, "volunteer", max_results)


# --------------------------------------------------
# Tasks
# --------------------------------------------------
def task_from_pair(donation: dict, request: Optional[dict] = None, recipient: Optional[dict] = None,
                   claim_id: Optional[str] = None) -> dict:
    """Delivery task: donation pickup -> request location (or the recipient's own address)."""
    if request:
        delivery = request_place(request)
        urgency = request.get("urgency") or donation_urgency(donation)
    elif recipient:
        delivery = Place(recipient.get("lat"), recipient.get("lng"), recipient.get("city"), recipient.get("address"))
        urgency = donation_urgency(donation)
    else:
        delivery = Place()
        urgency = donation_urgency(donation)
    return {
        "claim_id": claim_id,
        "donation_id": donation.get("id"),
        "request_id": (request or {}).get("id"),
        "category": donation.get("category") or (request or {}).get("category"),
        "urgency": urgency,
        "pickup": donation_place(donation),
        "delivery": delivery,
    }

async def task_for_claim(repo, claim_id: str) -> dict:
    claim = await repo.get_claim(claim_id)
    if not claim:
        raise NotFoundError("Claim", claim_id)
    donation = await repo.get_donation(claim["donation_id"])
    if not donation:
        raise NotFoundError("Donation", claim["donation_id"])
    request = await repo.get_request(claim["request_id"]) if claim.get("request_id") else None
    recipient = None if request else await repo.get_user(claim["recipient_id"])
    return task_from_pair(donation, request, recipient, claim_id=claim_id)

def needs_volunteer(donation: dict, request: Optional[dict] = None) -> bool:
    return donation.get("delivery_mode") == "volunteer" or (request or {}).get("delivery_mode") == "volunteer"


# --------------------------------------------------
# Candidate enumeration against the repo
# --------------------------------------------------
async def _load(repo, kind: str, subject: Union[str, dict]) -> dict:
    if isinstance(subject, dict):
        return subject
    getter = repo.get_donation if kind == "Donation" else repo.get_request
    doc = await getter(subject)
    if not doc:
        raise NotFoundError(kind, subject)
    return doc

async def match_request_to_donations(repo, request: Union[str, dict], params: Optional[MatchingParameters] = None,
                                     max_results: int = 10) -> List[dict]:
    request = await _load(repo, "Request", request)
    if request.get("status") != "open":
        return []
    params = await _snapshot(repo, params)
    donations = await repo.list_donations(status="available", limit=settings.candidate_page_limit)
    logger.debug("scoring {} donations for request {} (params v{})", len(donations), request["id"], params.version)
    return rank_donations_for_request(request, donations, params, max_results)

async def match_donation_to_requests(repo, donation: Union[str, dict], params: Optional[MatchingParameters] = None,
                                     max_results: int = 5) -> List[dict]:
    donation = await _load(repo, "Donation", donation)
    if donation.get("status") != "available":
        return []
    params = await _snapshot(repo, params)
    requests = await repo.list_requests(status="open", limit=settings.candidate_page_limit)
    logger.debug("scoring {} requests for donation {} (params v{})", len(requests), donation["id"], params.version)
    return rank_requests_for_donation(donation, requests, params, max_results)

async def available_volunteers(repo) -> List[dict]:
    volunteers = await repo.list_volunteers(status="active", limit=settings.candidate_page_limit)
    return [v for v in volunteers if (v.get("active_deliveries") or 0) < settings.overload_threshold]

async def match_volunteers_to_task(repo, task: dict, params: Optional[MatchingParameters] = None,
                                   max_results: int = 5, volunteers: Optional[List[dict]] = None) -> List[dict]:
    params = await _snapshot(repo, params)
    if volunteers is None:
        volunteers = await available_volunteers(repo)
    return rank_volunteers_for_task(task, volunteers, params, max_results)

async def find_optimal_matches(repo, params: Optional[MatchingParameters] = None, limit: int = 20) -> List[dict]:
    """
    For every open request: top 3 donations; pairs needing a volunteer get the top 2
    volunteers and a combined 0.6 * donor + 0.4 * volunteer score.
    """
    params = await _snapshot(repo, params)
    requests = await repo.list_requests(status="open", limit=settings.candidate_page_limit)
    donations = await repo.list_donations(status="available", limit=settings.candidate_page_limit)
    volunteers = await available_volunteers(repo)

    out: List[dict] = []
    for request in requests:
        for dm in rank_donations_for_request(request, donations, params, 3):
            donation = dm["donation"]
            base = {
                "request": request,
                "donation": donation,
                "donor_score": dm["score"],
                "match_reason": dm["match_reason"],
            }
            if not needs_volunteer(donation, request):
                out.append({**base, "volunteer": None, "volunteer_score": None,
                            "combined_score": dm["score"], "match_type": "direct",
                            "estimated_delivery_minutes": None})
                continue
            task = task_from_pair(donation, request)
            for vm in rank_volunteers_for_task(task, volunteers, params, 2):
                out.append({**base, "volunteer": vm["volunteer"], "volunteer_score": vm["score"],
                            "combined_score": round(dm["score"] * DONOR_SHARE + vm["score"] * VOLUNTEER_SHARE, 4),
                            "match_type": "three_way",
                            "estimated_delivery_minutes": estimate_delivery_minutes(task)})

    out.sort(key=lambda m: (-m["combined_score"], m["request"]["id"], m["donation"]["id"],
                            (m["volunteer"] or {}).get("id", "")))
    return out[:limit]


# --------------------------------------------------
# Request priority ranking
# --------------------------------------------------
def request_priority(request: dict, now: Optional[datetime] = None) -> float:
    now = now or utcnow()
    urgency = URGENCY_LEVELS.get(request.get("urgency") or "", 2) / 4
    qty = request.get("quantity_needed")
    pressure = min((qty if isinstance(qty, (int, float)) else 1) / 10, 1)
    created = as_utc(request.get("created_at")) or now
    age_days = max(1.0, (now - created).total_seconds() / 86400)
    recency = max(0.0, 1 - age_days / 30)
    perishable = 0.1 if (request.get("category") or "").lower() in PERISHABLE_CATEGORIES else 0.0
    return round(urgency * 0.5 + pressure * 0.25 + recency * 0.15 + perishable, 4)

async def rank_open_requests(repo, limit: int = 50, now: Optional[datetime] = None) -> List[Dict]:
    requests = await repo.list_requests(status="open", limit=settings.candidate_page_limit)
    scored = [{"request": r, "score": request_priority(r, now)} for r in requests]
    scored.sort(key=lambda e: (-e["score"], e["request"]["id"]))
    return scored[:limit]
