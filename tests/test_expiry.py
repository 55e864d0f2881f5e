from datetime import timedelta

import pytest

from hopelink.core.timeutil import utcnow
from hopelink.services.expiry import auto_expire_donations

pytestmark = pytest.mark.anyio

async def _donation(repo, **kw):
    doc = {"donor_id": "donor-1", "title": "bread", "category": "food", "quantity": 3, "status": "available"}
    doc.update(kw)
    return await repo.create_donation(doc)

async def test_expires_overdue_live_donations(repo):
    now = utcnow()
    overdue = await _donation(repo, expiration_date=now - timedelta(hours=1))
    claimed = await _donation(repo, status="claimed", expiration_date=(now - timedelta(days=2)).isoformat())
    fresh = await _donation(repo, expiration_date=now + timedelta(days=1))
    done = await _donation(repo, status="completed", expiration_date=now - timedelta(days=1))
    undated = await _donation(repo)

    result = await auto_expire_donations(repo, retention_days=30, now=now)
    assert result == {"expired": 2, "archived": 0}

    for d in (overdue, claimed):
        saved = await repo.get_donation(d["id"])
        assert saved["status"] == "expired"
        assert saved["expired_at"] == now
    for d, status in ((fresh, "available"), (done, "completed"), (undated, "available")):
        assert (await repo.get_donation(d["id"]))["status"] == status

async def test_archives_after_retention(repo):
    now = utcnow()
    old = await _donation(repo, status="expired", expired_at=now - timedelta(days=40))
    recent = await _donation(repo, status="expired", expired_at=now - timedelta(days=5))

    result = await auto_expire_donations(repo, retention_days=30, now=now)
    assert result == {"expired": 0, "archived": 1}
    assert (await repo.get_donation(old["id"]))["status"] == "archived"
    assert (await repo.get_donation(recent["id"]))["status"] == "expired"

async def test_second_pass_is_a_no_op(repo):
    now = utcnow()
    await _donation(repo, expiration_date=now - timedelta(hours=1))
    await auto_expire_donations(repo, now=now)
    assert await auto_expire_donations(repo, now=now) == {"expired": 0, "archived": 0}
