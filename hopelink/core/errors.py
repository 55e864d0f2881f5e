# hopelink/core/errors.py

class HopeLinkError(Exception):
    """Base class for domain errors raised by the services."""

class NotFoundError(HopeLinkError):
    def __init__(self, kind: str, ident: str):
        super().__init__(f"{kind} {ident} not found")
        self.kind = kind
        self.ident = ident

class ConflictError(HopeLinkError):
    """A compare-and-set lost a race, or the record is no longer in the expected state."""

class InvalidTransition(ConflictError):
    def __init__(self, kind: str, src: str, dst: str):
        super().__init__(f"{kind} transition {src} -> {dst} not allowed")
        self.kind = kind
        self.src = src
        self.dst = dst

class DuplicateClaim(ConflictError):
    def __init__(self, donation_id: str):
        super().__init__(f"Donation {donation_id} already has a claim")
        self.donation_id = donation_id

class PermissionDenied(HopeLinkError):
    pass

class IncompatibleMatch(HopeLinkError):
    pass
