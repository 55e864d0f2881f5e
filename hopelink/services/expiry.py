# hopelink/services/expiry.py
import asyncio
from datetime import datetime, timedelta
from typing import Dict, Optional

from loguru import logger

from hopelink.core.states import DONATION_STATES, TERMINAL_DONATION_STATES, can_transition
from hopelink.core.timeutil import as_utc, utcnow

LIVE_STATES = [s for s in DONATION_STATES if s not in TERMINAL_DONATION_STATES]

async def _move(repo, donation: dict, dst: str, extra: dict) -> bool:
    if not can_transition("donation", donation["status"], dst):
        return False
    saved = await repo.update_donation(
        donation["id"], {**extra, "status": dst},
        expect={"status": donation["status"], "version": donation.get("version")},
    )
    if saved is None:
        # someone else moved it first; the next run sees the new state
        logger.debug("donation {} changed during expiry pass", donation["id"])
        return False
    return True

async def auto_expire_donations(repo, retention_days: int = 30, now: Optional[datetime] = None) -> Dict[str, int]:
    """
    Expire live donations whose expiration_date has passed, then archive
    donations that have been expired for longer than `retention_days`.
    """
    now = now or utcnow()
    expired = archived = 0

    for d in await repo.list_donations(status=LIVE_STATES):
        exp = as_utc(d.get("expiration_date"))
        if exp and exp < now and await _move(repo, d, "expired", {"expired_at": now}):
            expired += 1

    cutoff = now - timedelta(days=retention_days)
    for d in await repo.list_donations(status="expired"):
        at = as_utc(d.get("expired_at"))
        if at and at < cutoff and await _move(repo, d, "archived", {"archived_at": now}):
            archived += 1

    if expired or archived:
        logger.info("expiry pass: {} expired, {} archived", expired, archived)
    return {"expired": expired, "archived": archived}

async def run_expiry_loop(repo, interval_minutes: int, retention_days: int):
    while True:
        try:
            await auto_expire_donations(repo, retention_days)
        except Exception:
            logger.exception("expiry pass failed; retrying next interval")
        await asyncio.sleep(interval_minutes * 60)
