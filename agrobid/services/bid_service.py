"""
Bid Acceptance Service

Accepts bids on active sales and keeps the sale's price state consistent when
many buyers bid on the same lot at once. The only serialization point is a
single conditional UPDATE on the sale row:

    UPDATE sales
       SET current_highest_bid = :amount, highest_bidder_id = :buyer,
           total_bids = total_bids + 1
     WHERE id = :sale_id AND status = 'active'
       AND coalesce(current_highest_bid, 0) < :amount

The row count of that statement decides whether a bid won its slot. The bid
ledger row is inserted in the same transaction, so a committed price always
has its bid.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Callable, List, Optional
from uuid import UUID

from sqlalchemy import func, update
from sqlalchemy.orm import Session, joinedload

from agrobid.core.config import settings
from agrobid.db.models import Bid, Sale, User, utcnow
from agrobid.services.errors import (
    AuctionEnded,
    AuctionError,
    BidTooLow,
    InvalidAmount,
    NotActive,
    NotStarted,
    OutbidRace,
    SaleNotFound,
)
from agrobid.services.notification_service import Notifier, notify_new_bid, sale_event_hub
from agrobid.utils.auction_state import AuctionStateMachine, AuctionStatus, BidStatus

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


@dataclass(frozen=True)
class BidPlacement:
    """Result of an accepted bid."""
    bid_id: UUID
    sale_id: UUID
    amount: Decimal
    total_bids: int


@dataclass(frozen=True)
class BuyerSaleSummary:
    """A buyer's standing on one sale: their best bid and whether it leads."""
    sale: Sale
    highest_bid: Bid
    bid_count: int
    is_leading: bool


MAX_AMOUNT = Decimal("999999999999.99")
CENT = Decimal("0.01")


def parse_amount(raw) -> Decimal:
    """Parse a client-supplied amount into a positive, finite Decimal in whole cents."""
    if raw is None or isinstance(raw, bool):
        raise InvalidAmount("Invalid bid amount")
    try:
        amount = Decimal(str(raw).strip())
    except (InvalidOperation, ValueError):
        raise InvalidAmount("Invalid bid amount")
    if not amount.is_finite() or amount <= 0:
        raise InvalidAmount("Invalid bid amount")
    if amount > MAX_AMOUNT:
        raise InvalidAmount("Bid amount is too large", {"maximum": MAX_AMOUNT})
    if amount != amount.quantize(CENT):
        raise InvalidAmount("Bid amount can have at most 2 decimal places")
    return amount.quantize(CENT)


def minimum_acceptable_bid(sale: Sale, min_increment: Decimal) -> Decimal:
    """First bid must reach the floor; later bids must beat the highest by the increment."""
    if not sale.total_bids:
        return Decimal(sale.minimum_price)
    return Decimal(sale.current_highest_bid) + min_increment


class BidAcceptanceService:

    def __init__(
        self,
        clock: Clock = utcnow,
        notifier: Notifier = sale_event_hub,
        min_increment: Optional[Decimal] = None
    ):
        self.clock = clock
        self.notifier = notifier
        self.min_increment = Decimal(min_increment if min_increment is not None else settings.BID_MIN_INCREMENT)

    def place_bid(self, db: Session, sale_id: UUID, buyer: User, amount) -> BidPlacement:
        """
        Validate and commit a bid.

        Raises:
            InvalidAmount, SaleNotFound, NotStarted, AuctionEnded, NotActive,
            BidTooLow: rejected before any write.
            OutbidRace: a concurrent bid took the slot first; nothing was written.
        """
        amount = parse_amount(amount)

        sale = db.query(Sale).populate_existing().filter(Sale.id == sale_id).first()
        if not sale:
            raise SaleNotFound(sale_id)

        self._check_bidding_window(sale, self.clock())

        minimum = minimum_acceptable_bid(sale, self.min_increment)
        if amount < minimum:
            if not sale.total_bids:
                message = f"First bid must be at least {minimum}"
            else:
                message = f"Bid too low. Must be at least {minimum}"
            raise BidTooLow(message, {
                "minimum_bid": minimum,
                "current_highest": sale.current_highest_bid,
            })

        try:
            total_bids = self._commit_highest_bid(db, sale_id, buyer.id, amount)
            if total_bids is None:
                db.rollback()
                raise self._race_lost(db, sale_id)

            bid = Bid(sale_id=sale_id, buyer_id=buyer.id, amount=amount, status=BidStatus.ACTIVE)
            db.add(bid)
            db.commit()
        except AuctionError:
            raise
        except Exception:
            db.rollback()
            raise

        db.refresh(bid)
        logger.info(f"Bid {bid.id} of {amount} by {buyer.id} accepted on sale {sale_id} ({total_bids} bids)")

        try:
            notify_new_bid(self.notifier, bid, buyer, total_bids)
        except Exception as e:
            logger.error(f"Failed to publish new bid for sale {sale_id}: {str(e)}")

        return BidPlacement(bid_id=bid.id, sale_id=sale_id, amount=amount, total_bids=total_bids)

    def _check_bidding_window(self, sale: Sale, now: datetime):
        if now < sale.auction_start_date:
            raise NotStarted("Bidding has not started yet", {"auction_start_date": sale.auction_start_date})
        if now > sale.auction_end_date:
            raise AuctionEnded("Bidding has ended for this item", {"auction_end_date": sale.auction_end_date})
        if not AuctionStateMachine.can_receive_bids(sale.status):
            raise NotActive("Auction not active", {"status": sale.status})

    def _commit_highest_bid(self, db: Session, sale_id: UUID, buyer_id: UUID, amount: Decimal) -> Optional[int]:
        """Conditional update of the price state; returns the new bid count or None if the precondition failed."""
        stmt = (
            update(Sale)
            .where(
                Sale.id == sale_id,
                Sale.status == AuctionStatus.ACTIVE,
                func.coalesce(Sale.current_highest_bid, 0) < amount,
            )
            .values(
                current_highest_bid=amount,
                highest_bidder_id=buyer_id,
                total_bids=Sale.total_bids + 1,
                updated_at=utcnow(),
            )
            .returning(Sale.total_bids)
            .execution_options(synchronize_session=False)
        )
        row = db.execute(stmt).first()
        return row[0] if row else None

    def _race_lost(self, db: Session, sale_id: UUID) -> AuctionError:
        """Explain a failed conditional update from the sale's state as it is now."""
        fresh = db.query(Sale).populate_existing().filter(Sale.id == sale_id).first()
        if not fresh:
            return SaleNotFound(sale_id)

        if fresh.status != AuctionStatus.ACTIVE:
            if fresh.status in (AuctionStatus.SOLD, AuctionStatus.UNSOLD) or self.clock() > fresh.auction_end_date:
                return AuctionEnded("Bidding has ended for this item", {"auction_end_date": fresh.auction_end_date})
            return NotActive("Auction not active", {"status": fresh.status})

        logger.info(f"Bid on sale {sale_id} lost the race at {fresh.current_highest_bid}")
        return OutbidRace(
            "Your bid was not high enough (race condition). Try again.",
            {"current_highest": fresh.current_highest_bid},
        )

    def list_bids_for_sale(self, db: Session, sale_id: UUID) -> List[Bid]:
        """All bids on a sale, highest first."""
        if not db.query(Sale.id).filter(Sale.id == sale_id).first():
            raise SaleNotFound(sale_id)

        return db.query(Bid).options(joinedload(Bid.buyer)).filter(
            Bid.sale_id == sale_id
        ).order_by(Bid.amount.desc(), Bid.created_at.asc()).all()

    def list_bids_for_buyer(self, db: Session, buyer_id: UUID) -> List[Bid]:
        """A buyer's bids across all sales, newest first."""
        return db.query(Bid).options(joinedload(Bid.sale)).filter(
            Bid.buyer_id == buyer_id
        ).order_by(Bid.created_at.desc(), Bid.id.desc()).all()

    def list_unique_bids_for_buyer(self, db: Session, buyer_id: UUID) -> List[BuyerSaleSummary]:
        """One entry per sale the buyer bid on, with their highest bid, most recent first."""
        bids = db.query(Bid).options(joinedload(Bid.sale)).filter(
            Bid.buyer_id == buyer_id
        ).order_by(Bid.amount.desc(), Bid.created_at.asc()).all()

        best = {}
        counts = {}
        for bid in bids:
            counts[bid.sale_id] = counts.get(bid.sale_id, 0) + 1
            best.setdefault(bid.sale_id, bid)

        summaries = [
            BuyerSaleSummary(
                sale=bid.sale,
                highest_bid=bid,
                bid_count=counts[sale_id],
                is_leading=bid.sale.highest_bidder_id == buyer_id,
            )
            for sale_id, bid in best.items()
        ]
        summaries.sort(key=lambda s: s.highest_bid.created_at, reverse=True)
        return summaries


# Singleton instance
bid_service = BidAcceptanceService()
