DONATION_STATES = [
    "available", "matched", "claimed", "in_transit",
    "delivered", "completed", "expired", "archived", "cancelled",
]
REQUEST_STATES = ["open", "claimed", "fulfilled", "cancelled"]
CLAIM_STATES = [
    "claimed", "awaiting_volunteer_acceptance", "assigned", "completed", "cancelled",
]

# statuses that auto-expiry leaves alone
TERMINAL_DONATION_STATES = {"completed", "cancelled", "archived", "expired"}

TRANSITIONS = {
    "donation": {
        ("available", "matched"),
        ("available", "claimed"),
        ("available", "expired"),
        ("available", "cancelled"),
        ("matched",   "claimed"),
        ("matched",   "available"),
        ("matched",   "expired"),
        ("claimed",   "in_transit"),
        ("claimed",   "delivered"),
        ("claimed",   "available"),
        ("claimed",   "matched"),
        ("claimed",   "expired"),
        ("in_transit", "delivered"),
        ("in_transit", "expired"),
        ("delivered", "completed"),
        ("delivered", "expired"),
        ("expired",   "archived"),
    },
    "request": {
        ("open",    "claimed"),
        ("open",    "fulfilled"),
        ("open",    "cancelled"),
        ("claimed", "fulfilled"),
        ("claimed", "open"),
    },
    "claim": {
        ("claimed", "awaiting_volunteer_acceptance"),
        ("claimed", "assigned"),
        ("claimed", "completed"),
        ("claimed", "cancelled"),
        ("awaiting_volunteer_acceptance", "assigned"),
        ("awaiting_volunteer_acceptance", "claimed"),
        ("assigned", "completed"),
    },
}

def can_transition(kind: str, src: str, dst: str) -> bool:
    return (src, dst) in TRANSITIONS.get(kind, set())
