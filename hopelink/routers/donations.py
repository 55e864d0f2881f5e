# hopelink/routers/donations.py
from fastapi import APIRouter, Depends, HTTPException

from hopelink.core.errors import NotFoundError
from hopelink.core.timeutil import as_utc, utcnow
from hopelink.deps import get_repo
from hopelink.schemas import ClaimIn, DonationIn
from hopelink.services.claims import claim_donation, evaluate_new_donation

router = APIRouter(prefix="/api/donations", tags=["donations"])

@router.post("", status_code=201)
async def create_donation(payload: DonationIn, repo=Depends(get_repo)):
    doc = payload.model_dump()
    exp = as_utc(doc.get("expiration_date"))
    if exp and exp <= utcnow():
        raise HTTPException(status_code=422, detail="expiration_date must be in the future")
    doc["expiration_date"] = exp
    doc["status"] = "available"

    saved = await repo.create_donation(doc)
    outcome = await evaluate_new_donation(repo, saved)
    # auto-claim may have moved it on
    current = await repo.get_donation(saved["id"]) or saved
    return {
        "donation": current,
        "suggested_matches": outcome.suggestions,
        "auto_match": outcome.to_dict(),
    }

@router.get("/{donation_id}")
async def get_donation(donation_id: str, repo=Depends(get_repo)):
    doc = await repo.get_donation(donation_id)
    if not doc:
        raise NotFoundError("Donation", donation_id)
    return doc

@router.post("/{donation_id}/claim", status_code=201)
async def claim(donation_id: str, payload: ClaimIn, repo=Depends(get_repo)):
    return await claim_donation(
        repo, donation_id, payload.recipient_id,
        request_id=payload.request_id, auto_assign=payload.auto_assign,
    )
