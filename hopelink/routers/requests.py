# hopelink/routers/requests.py
from fastapi import APIRouter, Depends

from hopelink.core.errors import NotFoundError
from hopelink.deps import get_repo
from hopelink.schemas import RequestIn
from hopelink.services.claims import evaluate_new_request

router = APIRouter(prefix="/api/requests", tags=["requests"])

@router.post("", status_code=201)
async def create_request(payload: RequestIn, repo=Depends(get_repo)):
    doc = payload.model_dump()
    doc["status"] = "open"
    saved = await repo.create_request(doc)
    outcome = await evaluate_new_request(repo, saved)
    current = await repo.get_request(saved["id"]) or saved
    return {
        "request": current,
        "suggested_matches": outcome.suggestions,
        "auto_match": outcome.to_dict(),
    }

@router.get("/{request_id}")
async def get_request(request_id: str, repo=Depends(get_repo)):
    doc = await repo.get_request(request_id)
    if not doc:
        raise NotFoundError("Request", request_id)
    return doc
