# hopelink/repos/mongo.py
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Union

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from hopelink.core.errors import DuplicateClaim

Status = Union[str, Iterable[str], None]

def oid() -> str:
    return str(ObjectId())

def _utcnow() -> datetime:
    return datetime.now(timezone.utc)

def _out(doc: Optional[dict]) -> Optional[dict]:
    if not doc:
        return None
    doc["id"] = str(doc.pop("_id"))
    return doc

def _query(status: Status = None, **eq) -> dict:
    q = dict(eq)
    if isinstance(status, str):
        q["status"] = status
    elif status is not None:
        q["status"] = {"$in": list(status)}
    return q

class MongoRepo:
    """Motor-backed repository. Records keep a string `_id`, exposed as `id`."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db

    # ---- generic helpers
    async def _insert(self, name: str, doc: dict) -> dict:
        doc = dict(doc)
        now = _utcnow()
        doc["_id"] = doc.pop("id", None) or oid()
        doc.setdefault("version", 1)
        doc.setdefault("created_at", now)
        doc.setdefault("updated_at", now)
        await self.db[name].insert_one(doc)
        return _out(doc)

    async def _get(self, name: str, ident: str) -> Optional[dict]:
        return _out(await self.db[name].find_one({"_id": ident}))

    async def _list(self, name: str, status: Status = None, limit: Optional[int] = None, **eq) -> List[dict]:
        cur = self.db[name].find(_query(status, **eq)).sort("created_at", -1)
        if limit is not None:
            cur = cur.limit(limit)
        return [_out(d) async for d in cur]

    async def _cas(self, name: str, ident: str, changes: dict, expect: Optional[dict]) -> Optional[dict]:
        q = {"_id": ident, **(expect or {})}
        doc = await self.db[name].find_one_and_update(
            q,
            {"$set": {**changes, "updated_at": _utcnow()}, "$inc": {"version": 1}},
            return_document=ReturnDocument.AFTER,
        )
        return _out(doc)

    # ---- users
    async def create_user(self, doc: dict) -> dict:
        return await self._insert("users", doc)

    async def get_user(self, user_id: str) -> Optional[dict]:
        return await self._get("users", user_id)

    # ---- donations
    async def create_donation(self, doc: dict) -> dict:
        return await self._insert("donations", doc)

    async def get_donation(self, donation_id: str) -> Optional[dict]:
        return await self._get("donations", donation_id)

    async def list_donations(self, status: Status = None, limit: Optional[int] = None, **eq) -> List[dict]:
        return await self._list("donations", status, limit, **eq)

    async def update_donation(self, donation_id: str, changes: dict, expect: Optional[dict] = None) -> Optional[dict]:
        return await self._cas("donations", donation_id, changes, expect)

    # ---- requests
    async def create_request(self, doc: dict) -> dict:
        return await self._insert("requests", doc)

    async def get_request(self, request_id: str) -> Optional[dict]:
        return await self._get("requests", request_id)

    async def list_requests(self, status: Status = None, limit: Optional[int] = None, **eq) -> List[dict]:
        return await self._list("requests", status, limit, **eq)

    async def update_request(self, request_id: str, changes: dict, expect: Optional[dict] = None) -> Optional[dict]:
        return await self._cas("requests", request_id, changes, expect)

    # ---- volunteers
    async def create_volunteer(self, doc: dict) -> dict:
        return await self._insert("volunteers", doc)

    async def get_volunteer(self, volunteer_id: str) -> Optional[dict]:
        return await self._get("volunteers", volunteer_id)

    async def list_volunteers(self, status: Status = None, limit: Optional[int] = None) -> List[dict]:
        return await self._list("volunteers", status, limit)

    async def update_volunteer(self, volunteer_id: str, changes: dict, expect: Optional[dict] = None) -> Optional[dict]:
        return await self._cas("volunteers", volunteer_id, changes, expect)

    # ---- claims
    async def create_claim(self, doc: dict) -> dict:
        try:
            return await self._insert("claims", doc)
        except DuplicateKeyError:
            raise DuplicateClaim(doc["donation_id"])

    async def get_claim(self, claim_id: str) -> Optional[dict]:
        return await self._get("claims", claim_id)

    async def get_claim_for_donation(self, donation_id: str) -> Optional[dict]:
        return _out(await self.db.claims.find_one({"donation_id": donation_id}))

    async def update_claim(self, claim_id: str, changes: dict, expect: Optional[dict] = None) -> Optional[dict]:
        return await self._cas("claims", claim_id, changes, expect)

    async def delete_claim(self, claim_id: str) -> bool:
        res = await self.db.claims.delete_one({"_id": claim_id})
        return res.deleted_count == 1

    # ---- notifications
    async def create_notification(self, doc: dict) -> Optional[dict]:
        try:
            return await self._insert("notifications", doc)
        except DuplicateKeyError:
            return None

    async def list_notifications(self, user_id: str, limit: int = 50) -> List[dict]:
        return await self._list("notifications", limit=limit, user_id=user_id)

    # ---- matching parameters
    async def get_parameters(self, group: str) -> Optional[dict]:
        return await self._get("matching_parameters", group)

    async def put_parameters(self, group: str, doc: dict, expected_version: Optional[int]) -> Optional[dict]:
        if await self.db.matching_parameters.count_documents({"_id": group}, limit=1) == 0:
            if expected_version not in (None, 0):
                return None
            try:
                return await self._insert("matching_parameters", {**doc, "id": group, "parameter_group": group})
            except DuplicateKeyError:
                return None
        expect = {"version": expected_version} if expected_version is not None else None
        return await self._cas("matching_parameters", group, doc, expect)
