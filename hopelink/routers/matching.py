# hopelink/routers/matching.py
from fastapi import APIRouter, Depends, Query

from hopelink.deps import get_repo
from hopelink.schemas import SmartMatchIn
from hopelink.services.claims import create_smart_match
from hopelink.services.matching import (
    find_optimal_matches, match_donation_to_requests, match_request_to_donations,
    match_volunteers_to_task, rank_open_requests, task_for_claim,
)
from hopelink.services.scoring import estimate_delivery_minutes

router = APIRouter(prefix="/api/matching", tags=["matching"])

@router.get("/requests/{request_id}/donations")
async def donations_for_request(request_id: str, max_results: int = Query(10, ge=1, le=50),
                                repo=Depends(get_repo)):
    return {
        "request_id": request_id,
        "matches": await match_request_to_donations(repo, request_id, max_results=max_results),
    }

@router.get("/donations/{donation_id}/requests")
async def requests_for_donation(donation_id: str, max_results: int = Query(5, ge=1, le=50),
                                repo=Depends(get_repo)):
    return {
        "donation_id": donation_id,
        "matches": await match_donation_to_requests(repo, donation_id, max_results=max_results),
    }

@router.get("/claims/{claim_id}/volunteers")
async def volunteers_for_claim(claim_id: str, max_results: int = Query(5, ge=1, le=50),
                               repo=Depends(get_repo)):
    task = await task_for_claim(repo, claim_id)
    return {
        "claim_id": claim_id,
        "task": task,
        "estimated_delivery_minutes": estimate_delivery_minutes(task),
        "matches": await match_volunteers_to_task(repo, task, max_results=max_results),
    }

@router.get("/optimal")
async def optimal(limit: int = Query(20, ge=1, le=100), repo=Depends(get_repo)):
    return {"matches": await find_optimal_matches(repo, limit=limit)}

@router.get("/ranking")
async def ranking(limit: int = Query(50, ge=1, le=200), repo=Depends(get_repo)):
    return {"requests": await rank_open_requests(repo, limit=limit)}

@router.post("/smart-match", status_code=201)
async def smart_match(payload: SmartMatchIn, repo=Depends(get_repo)):
    return await create_smart_match(repo, payload.request_id, payload.donation_id, payload.volunteer_id)
