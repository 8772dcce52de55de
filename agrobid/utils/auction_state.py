"""
Auction State Machine - Manages sale lifecycle and status transitions
"""
from typing import List


class AuctionStatus:
    """Valid sale status values"""
    PENDING = "pending"
    ACTIVE = "active"
    SOLD = "sold"
    UNSOLD = "unsold"
    CANCELLED = "cancelled"


class BidStatus:
    """Valid bid status values"""
    ACTIVE = "active"
    WON = "won"
    LOST = "lost"


class BatchStatus:
    """Produce batch statuses this service writes"""
    AVAILABLE = "available"
    SOLD = "sold"


class AuctionStateMachine:
    """
    State machine for an auctioned sale.

    State Flow:
    pending → active → sold      (end date passed, at least one bid)
                     ↘ unsold    (end date passed, no bids)

    'cancelled' is reachable from pending and active on seller request.
    Timer-driven transitions belong to the settlement sweep.
    """

    TRANSITIONS = {
        AuctionStatus.PENDING: [AuctionStatus.ACTIVE, AuctionStatus.CANCELLED],
        AuctionStatus.ACTIVE: [AuctionStatus.SOLD, AuctionStatus.UNSOLD, AuctionStatus.CANCELLED],
        AuctionStatus.SOLD: [],  # Terminal state
        AuctionStatus.UNSOLD: [],  # Terminal state
        AuctionStatus.CANCELLED: []  # Terminal state
    }

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if transition from one status to another is valid"""
        if from_status not in cls.TRANSITIONS:
            return False
        return to_status in cls.TRANSITIONS[from_status]

    @classmethod
    def sources_of(cls, to_status: str) -> List[str]:
        """Statuses from which `to_status` can be reached"""
        return [s for s, targets in cls.TRANSITIONS.items() if to_status in targets]

    @classmethod
    def is_terminal_status(cls, status: str) -> bool:
        """Check if status is terminal (no further transitions allowed)"""
        return not cls.TRANSITIONS.get(status, [])

    @classmethod
    def can_receive_bids(cls, status: str) -> bool:
        """Check if sale can receive bids in current status"""
        return status == AuctionStatus.ACTIVE
