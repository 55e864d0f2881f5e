from fastapi import APIRouter, Depends, Query

from hopelink.deps import get_repo

router = APIRouter(prefix="/api/notifications", tags=["notifications"])

@router.get("/{user_id}")
async def list_for_user(user_id: str, limit: int = Query(50, ge=1, le=200), repo=Depends(get_repo)):
    return await repo.list_notifications(user_id, limit=limit)
