# hopelink/routers/volunteers.py
from fastapi import APIRouter, Depends

from hopelink.core.errors import NotFoundError
from hopelink.deps import get_repo
from hopelink.schemas import VolunteerIn

router = APIRouter(prefix="/api/volunteers", tags=["volunteers"])

@router.post("", status_code=201)
async def create_volunteer(payload: VolunteerIn, repo=Depends(get_repo)):
    return await repo.create_volunteer(payload.model_dump())

@router.get("/{volunteer_id}")
async def get_volunteer(volunteer_id: str, repo=Depends(get_repo)):
    doc = await repo.get_volunteer(volunteer_id)
    if not doc:
        raise NotFoundError("Volunteer", volunteer_id)
    return doc
