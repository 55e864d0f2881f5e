import asyncio

from hopelink.core.db import get_db
from hopelink.core.indexes import ensure_indexes
from hopelink.core.security import create_token
from hopelink.repos.mongo import MongoRepo
from hopelink.services.parameters import DEFAULT_GROUP, ParameterStore

CEBU = (10.3157, 123.8854)
MANDAUE = (10.3236, 123.9223)

async def main():
    db = get_db()
    await ensure_indexes(db)
    repo = MongoRepo(db)

    # wipe demo rows if they exist
    for col in ("donations", "requests", "volunteers", "claims", "notifications"):
        await db[col].delete_many({"demo": True})
    await db.users.delete_many({"_id": {"$in": ["admin-demo", "donor-demo", "recipient-demo"]}})

    await repo.create_user({"id": "admin-demo", "name": "Admin", "role": "admin"})
    await repo.create_user({"id": "donor-demo", "name": "Donor A", "role": "donor"})
    await repo.create_user({"id": "recipient-demo", "name": "Recipient One", "role": "recipient",
                            "city": "Cebu City", "lat": CEBU[0], "lng": CEBU[1]})

    row = await repo.get_parameters(DEFAULT_GROUP)
    if not row:
        await ParameterStore(repo).update(DEFAULT_GROUP, {}, expected_version=0)

    await repo.create_donation({
        "demo": True, "donor_id": "donor-demo", "title": "Rice and Canned Goods", "category": "food",
        "quantity": 20, "pickup_location": "Osmena Blvd, Cebu City, Cebu",
        "pickup_lat": CEBU[0], "pickup_lng": CEBU[1], "is_urgent": True, "delivery_mode": "volunteer",
        "donor_stats": {"rating": 4.6, "completed": 8, "total": 9}, "status": "available",
    })
    await repo.create_donation({
        "demo": True, "donor_id": "donor-demo", "title": "Children's Clothing Set", "category": "clothing",
        "quantity": 15, "pickup_location": "A.S. Fortuna St, Mandaue City, Cebu",
        "pickup_lat": MANDAUE[0], "pickup_lng": MANDAUE[1], "delivery_mode": "pickup", "status": "available",
    })
    await repo.create_request({
        "demo": True, "requester_id": "recipient-demo", "title": "Rice for families", "category": "food",
        "quantity_needed": 20, "urgency": "critical", "city": "Cebu City",
        "lat": CEBU[0], "lng": CEBU[1], "status": "open",
    })
    await repo.create_volunteer({
        "demo": True, "name": "Volunteer V", "city": "Mandaue City", "lat": MANDAUE[0], "lng": MANDAUE[1],
        "preferred_delivery_types": ["food items", "household items"], "urgency_response": "high",
        "stats": {"rating": 4.8, "completed": 12, "total": 12}, "active_deliveries": 0, "status": "active",
    })

    print("Seeded demo donations, request, volunteer and parameters")
    print("Admin token:", create_token({"sub": "admin-demo"}, minutes=24 * 60))

if __name__ == "__main__":
    asyncio.run(main())
