# hopelink/routers/claims.py
from typing import Optional

from fastapi import APIRouter, Depends, Query

from hopelink.core.errors import NotFoundError
from hopelink.deps import get_repo
from hopelink.schemas import AcceptAssignmentIn
from hopelink.services.claims import accept_volunteer_assignment, auto_assign_volunteer

router = APIRouter(prefix="/api/claims", tags=["claims"])

@router.get("/{claim_id}")
async def get_claim(claim_id: str, repo=Depends(get_repo)):
    doc = await repo.get_claim(claim_id)
    if not doc:
        raise NotFoundError("Claim", claim_id)
    return doc

@router.post("/{claim_id}/auto-assign")
async def auto_assign(claim_id: str, timeout_minutes: Optional[int] = Query(None, ge=1, le=24 * 60),
                      repo=Depends(get_repo)):
    return await auto_assign_volunteer(repo, claim_id, timeout_minutes)

@router.post("/{claim_id}/accept")
async def accept(claim_id: str, payload: AcceptAssignmentIn, repo=Depends(get_repo)):
    return await accept_volunteer_assignment(repo, claim_id, payload.volunteer_id)
