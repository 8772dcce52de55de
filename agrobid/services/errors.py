"""
Domain errors raised by the auction services.

Every error carries the HTTP status it maps to and a payload the client can
act on without another round-trip (current highest bid, minimum bid, ...).
"""
from typing import Any, Dict, Optional


class AuctionError(Exception):
    status_code = 400
    code = "auction_error"

    def __init__(self, message: str, payload: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.payload = payload or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"detail": self.message, "code": self.code, **self.payload}


class InvalidAmount(AuctionError):
    code = "invalid_amount"


class SaleNotFound(AuctionError):
    status_code = 404
    code = "not_found"

    def __init__(self, sale_id):
        super().__init__("Listing not found", {"sale_id": str(sale_id)})


class NotStarted(AuctionError):
    code = "not_started"


class AuctionEnded(AuctionError):
    code = "auction_ended"


class NotActive(AuctionError):
    code = "not_active"


class BidTooLow(AuctionError):
    code = "bid_too_low"


class OutbidRace(AuctionError):
    status_code = 409
    code = "outbid_race"


class NotSaleOwner(AuctionError):
    status_code = 403
    code = "forbidden"


class InvalidTransition(AuctionError):
    code = "invalid_transition"
