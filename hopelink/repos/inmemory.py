# hopelink/repos/inmemory.py
import copy
import uuid
from collections import defaultdict
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Union

from hopelink.core.errors import DuplicateClaim

Status = Union[str, Iterable[str], None]

def _id() -> str:
    return uuid.uuid4().hex

def _utcnow() -> datetime:
    return datetime.now(timezone.utc)

def _status_ok(doc: dict, status: Status) -> bool:
    if status is None:
        return True
    if isinstance(status, str):
        return doc.get("status") == status
    return doc.get("status") in set(status)

class InMemoryRepo:
    """Dict-backed repository with the same async surface as MongoRepo."""

    def __init__(self):
        self.cols: Dict[str, Dict[str, dict]] = defaultdict(dict)

    # ---- generic helpers
    def _insert(self, name: str, doc: dict) -> dict:
        doc = copy.deepcopy(doc)
        now = _utcnow()
        doc.setdefault("id", _id())
        doc.setdefault("version", 1)
        doc.setdefault("created_at", now)
        doc.setdefault("updated_at", now)
        self.cols[name][doc["id"]] = doc
        return copy.deepcopy(doc)

    def _get(self, name: str, ident: str) -> Optional[dict]:
        doc = self.cols[name].get(ident)
        return copy.deepcopy(doc) if doc else None

    def _list(self, name: str, status: Status = None, limit: Optional[int] = None, **eq) -> List[dict]:
        vals = [
            d for d in self.cols[name].values()
            if _status_ok(d, status) and all(d.get(k) == v for k, v in eq.items())
        ]
        vals = sorted(vals, key=lambda d: d["created_at"], reverse=True)
        if limit is not None:
            vals = vals[:limit]
        return [copy.deepcopy(d) for d in vals]

    def _cas(self, name: str, ident: str, changes: dict, expect: Optional[dict]) -> Optional[dict]:
        doc = self.cols[name].get(ident)
        if doc is None:
            return None
        if expect and any(doc.get(k) != v for k, v in expect.items()):
            return None
        doc.update(copy.deepcopy(changes))
        doc["version"] = doc.get("version", 1) + 1
        doc["updated_at"] = _utcnow()
        return copy.deepcopy(doc)

    # ---- users
    async def create_user(self, doc: dict) -> dict:
        return self._insert("users", doc)

    async def get_user(self, user_id: str) -> Optional[dict]:
        return self._get("users", user_id)

    # ---- donations
    async def create_donation(self, doc: dict) -> dict:
        return self._insert("donations", doc)

    async def get_donation(self, donation_id: str) -> Optional[dict]:
        return self._get("donations", donation_id)

    async def list_donations(self, status: Status = None, limit: Optional[int] = None, **eq) -> List[dict]:
        return self._list("donations", status, limit, **eq)

    async def update_donation(self, donation_id: str, changes: dict, expect: Optional[dict] = None) -> Optional[dict]:
        return self._cas("donations", donation_id, changes, expect)

    # ---- requests
    async def create_request(self, doc: dict) -> dict:
        return self._insert("requests", doc)

    async def get_request(self, request_id: str) -> Optional[dict]:
        return self._get("requests", request_id)

    async def list_requests(self, status: Status = None, limit: Optional[int] = None, **eq) -> List[dict]:
        return self._list("requests", status, limit, **eq)

    async def update_request(self, request_id: str, changes: dict, expect: Optional[dict] = None) -> Optional[dict]:
        return self._cas("requests", request_id, changes, expect)

    # ---- volunteers
    async def create_volunteer(self, doc: dict) -> dict:
        return self._insert("volunteers", doc)

    async def get_volunteer(self, volunteer_id: str) -> Optional[dict]:
        return self._get("volunteers", volunteer_id)

    async def list_volunteers(self, status: Status = None, limit: Optional[int] = None) -> List[dict]:
        return self._list("volunteers", status, limit)

    async def update_volunteer(self, volunteer_id: str, changes: dict, expect: Optional[dict] = None) -> Optional[dict]:
        return self._cas("volunteers", volunteer_id, changes, expect)

    # ---- claims
    async def create_claim(self, doc: dict) -> dict:
        if any(c["donation_id"] == doc["donation_id"] for c in self.cols["claims"].values()):
            raise DuplicateClaim(doc["donation_id"])
        return self._insert("claims", doc)

    async def get_claim(self, claim_id: str) -> Optional[dict]:
        return self._get("claims", claim_id)

    async def get_claim_for_donation(self, donation_id: str) -> Optional[dict]:
        found = self._list("claims", donation_id=donation_id, limit=1)
        return found[0] if found else None

    async def update_claim(self, claim_id: str, changes: dict, expect: Optional[dict] = None) -> Optional[dict]:
        return self._cas("claims", claim_id, changes, expect)

    async def delete_claim(self, claim_id: str) -> bool:
        return self.cols["claims"].pop(claim_id, None) is not None

    # ---- notifications
    async def create_notification(self, doc: dict) -> Optional[dict]:
        key = doc.get("dedup_key")
        if key is not None:
            for n in self.cols["notifications"].values():
                if n["user_id"] == doc["user_id"] and n.get("dedup_key") == key:
                    return None
        return self._insert("notifications", doc)

    async def list_notifications(self, user_id: str, limit: int = 50) -> List[dict]:
        return self._list("notifications", limit=limit, user_id=user_id)

    # ---- matching parameters
    async def get_parameters(self, group: str) -> Optional[dict]:
        return self._get("matching_parameters", group)

    async def put_parameters(self, group: str, doc: dict, expected_version: Optional[int]) -> Optional[dict]:
        current = self.cols["matching_parameters"].get(group)
        if current is None:
            if expected_version not in (None, 0):
                return None
            return self._insert("matching_parameters", {**doc, "id": group, "parameter_group": group})
        return self._cas("matching_parameters", group, doc, {"version": expected_version} if expected_version is not None else None)
