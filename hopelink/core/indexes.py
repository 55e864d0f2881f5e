# hopelink/core/indexes.py
from pymongo import ASCENDING, DESCENDING

async def ensure_indexes(db):
    await db.donations.create_index("status")
    await db.donations.create_index("donor_id")
    await db.requests.create_index("status")
    await db.requests.create_index("requester_id")
    await db.volunteers.create_index("status")
    # one claim per donation; a re-run after partial failure must not double-create
    await db.claims.create_index([("donation_id", ASCENDING)], name="donation_id_unique", unique=True)
    await db.notifications.create_index(
        [("user_id", ASCENDING), ("dedup_key", ASCENDING)],
        name="user_dedup_unique",
        unique=True,
        partialFilterExpression={"dedup_key": {"$type": "string"}},
    )
    await db.notifications.create_index([("user_id", ASCENDING), ("created_at", DESCENDING)])
    await db.matching_parameters.create_index("parameter_group", unique=True)
