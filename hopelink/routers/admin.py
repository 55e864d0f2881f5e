# hopelink/routers/admin.py
from typing import Optional

from fastapi import APIRouter, Depends, Query

from hopelink.core.config import settings
from hopelink.core.security import require_roles
from hopelink.deps import get_repo
from hopelink.schemas import MatchingParametersUpdate
from hopelink.services.expiry import auto_expire_donations
from hopelink.services.parameters import ParameterStore

router = APIRouter(
    prefix="/api/admin",
    tags=["admin"],
    dependencies=[Depends(require_roles(["admin"]))],
)

@router.get("/matching-parameters/{group}")
async def get_parameters(group: str, repo=Depends(get_repo)):
    return await ParameterStore(repo).snapshot(group)

@router.put("/matching-parameters/{group}")
async def put_parameters(group: str, payload: MatchingParametersUpdate, repo=Depends(get_repo)):
    changes = payload.model_dump(exclude_none=True, exclude={"expected_version"})
    return await ParameterStore(repo).update(group, changes, payload.expected_version)

@router.post("/expire")
async def expire(retention_days: Optional[int] = Query(None, ge=0), repo=Depends(get_repo)):
    days = retention_days if retention_days is not None else settings.expiry_retention_days
    return await auto_expire_donations(repo, days)
