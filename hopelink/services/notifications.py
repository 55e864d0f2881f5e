# hopelink/services/notifications.py
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from loguru import logger

async def notify(
    repo,
    user_id: Optional[str],
    type_: str,
    title: str,
    message: str,
    data: Optional[Dict[str, Any]] = None,
    dedup_key: Optional[str] = None,
) -> Optional[dict]:
    """
    Insert one notification row for `user_id`.
    Rows sharing (user_id, dedup_key) are written once; a repeat returns None.
    """
    if not user_id:
        return None
    doc = {
        "user_id": user_id,
        "type": type_,
        "title": title,
        "message": message,
        "data": data or {},
        "read": False,
        "dedup_key": dedup_key,
        "created_at": datetime.now(timezone.utc),
    }
    saved = await repo.create_notification(doc)
    if saved is None:
        logger.debug("notification {} for {} already sent", dedup_key, user_id)
    return saved

async def notify_many(repo, user_ids: Iterable[Optional[str]], type_: str, title: str, message: str,
                      data: Optional[Dict[str, Any]] = None, dedup_key: Optional[str] = None) -> List[dict]:
    out = []
    for uid in dict.fromkeys(u for u in user_ids if u):
        saved = await notify(repo, uid, type_, title, message, data, dedup_key)
        if saved:
            out.append(saved)
    return out
