"""
Auction Settlement Sweeper

Moves sales through their timed lifecycle:
- pending -> active   (auction_start_date reached)
- active  -> sold     (auction_end_date passed, at least one bid)
- active  -> unsold   (auction_end_date passed, no bids)

Every transition is a conditional UPDATE keyed on the pre-transition status,
so re-running a sweep, or two sweepers racing, never settles a sale twice.
The sweeper never arbitrates between bids: the winner is whatever the bid
acceptance service last committed into the sale's price state.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Callable, List, Optional
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.orm import Session

from agrobid.db.models import Bid, MarketPrice, ProduceBatch, Sale, User, utcnow
from agrobid.services.notification_service import Notifier, notify_auction_ended, sale_event_hub
from agrobid.utils.auction_state import AuctionStatus, BatchStatus, BidStatus

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
MarketPriceRecorder = Callable[[Session, Sale], None]


@dataclass
class SweepReport:
    """What one sweep did."""
    activated: int = 0
    sold: List[UUID] = field(default_factory=list)
    unsold: List[UUID] = field(default_factory=list)
    failed: List[UUID] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "activated": self.activated,
            "sold": [str(s) for s in self.sold],
            "unsold": [str(s) for s in self.unsold],
            "failed": [str(s) for s in self.failed],
        }


def record_market_price(db: Session, sale: Sale):
    """Store the settled price as a per-unit market observation for the crop."""
    batch = db.query(ProduceBatch).filter(ProduceBatch.id == sale.produce_batch_id).first()
    if not batch:
        logger.warning(f"Sale {sale.id} has no produce batch, skipping market price")
        return

    price = Decimal(sale.final_price)
    if batch.quantity and batch.quantity > 0:
        price = (price / Decimal(str(batch.quantity))).quantize(Decimal("0.01"))

    db.add(MarketPrice(
        crop=batch.crop_name,
        date=sale.sold_date,
        price=price,
        unit=batch.unit,
        location=batch.storage_location,
        sale_id=sale.id,
    ))
    db.commit()


class AuctionSettlementSweeper:

    def __init__(
        self,
        clock: Clock = utcnow,
        notifier: Notifier = sale_event_hub,
        market_price_recorder: Optional[MarketPriceRecorder] = record_market_price
    ):
        self.clock = clock
        self.notifier = notifier
        self.market_price_recorder = market_price_recorder

    def run_sweep(self, db: Session) -> SweepReport:
        """One activation pass followed by one closing pass, both against the same instant."""
        now = self.clock()
        report = SweepReport()

        report.activated = self.activate_pending(db, now)
        self.close_expired(db, now, report)

        logger.info(
            f"Auction sweep: {report.activated} activated, {len(report.sold)} sold, "
            f"{len(report.unsold)} unsold, {len(report.failed)} failed"
        )
        return report

    def activate_pending(self, db: Session, now: datetime) -> int:
        """Open every pending sale whose start time has arrived."""
        try:
            result = db.execute(
                update(Sale)
                .where(Sale.status == AuctionStatus.PENDING, Sale.auction_start_date <= now)
                .values(status=AuctionStatus.ACTIVE, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            db.commit()
        except Exception:
            db.rollback()
            logger.exception("Error activating pending auctions")
            return 0

        if result.rowcount:
            logger.info(f"Activated {result.rowcount} pending auctions")
        return result.rowcount

    def close_expired(self, db: Session, now: datetime, report: SweepReport):
        """Settle every active sale whose end time has passed, each in its own transaction."""
        expired_ids = [
            sale_id for (sale_id,) in db.query(Sale.id).filter(
                Sale.status == AuctionStatus.ACTIVE,
                Sale.auction_end_date < now
            ).order_by(Sale.auction_end_date).all()
        ]
        if not expired_ids:
            logger.info("No expired auctions found")
            return

        logger.info(f"Found {len(expired_ids)} expired auctions. Processing...")
        for sale_id in expired_ids:
            try:
                outcome = self.settle_sale(db, sale_id, now)
            except Exception:
                db.rollback()
                logger.exception(f"Error settling sale {sale_id}")
                report.failed.append(sale_id)
                continue

            if outcome == AuctionStatus.SOLD:
                report.sold.append(sale_id)
            elif outcome == AuctionStatus.UNSOLD:
                report.unsold.append(sale_id)

    def settle_sale(self, db: Session, sale_id: UUID, now: datetime) -> Optional[str]:
        """
        Close one expired sale.

        Returns the status it moved to, or None when it was no longer active
        (already settled by an earlier or concurrent sweep).
        """
        sold = db.execute(
            update(Sale)
            .where(
                Sale.id == sale_id,
                Sale.status == AuctionStatus.ACTIVE,
                Sale.auction_end_date < now,
                Sale.total_bids > 0
            )
            .values(
                status=AuctionStatus.SOLD,
                sold_to_id=Sale.highest_bidder_id,
                final_price=Sale.current_highest_bid,
                sold_date=now,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        if sold.rowcount:
            self._settle_sold(db, sale_id)
            return AuctionStatus.SOLD

        unsold = db.execute(
            update(Sale)
            .where(
                Sale.id == sale_id,
                Sale.status == AuctionStatus.ACTIVE,
                Sale.auction_end_date < now,
                Sale.total_bids == 0
            )
            .values(status=AuctionStatus.UNSOLD, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if unsold.rowcount:
            self._settle_unsold(db, sale_id)
            return AuctionStatus.UNSOLD

        db.rollback()
        logger.info(f"Sale {sale_id} already settled, skipping")
        return None

    def _settle_sold(self, db: Session, sale_id: UUID):
        sale = db.query(Sale).populate_existing().filter(Sale.id == sale_id).one()

        db.execute(
            update(Bid)
            .where(Bid.sale_id == sale_id, Bid.status == BidStatus.ACTIVE)
            .values(status=BidStatus.LOST, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )

        # Earliest committed bid matching the final price state wins
        winning_bid = db.query(Bid).filter(
            Bid.sale_id == sale_id,
            Bid.buyer_id == sale.sold_to_id,
            Bid.amount == sale.final_price
        ).order_by(Bid.created_at.asc(), Bid.id.asc()).first()

        if winning_bid:
            db.execute(
                update(Bid)
                .where(Bid.id == winning_bid.id)
                .values(status=BidStatus.WON, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
        else:
            logger.warning(f"Sale {sale_id} sold at {sale.final_price} but no matching bid row was found")

        db.execute(
            update(ProduceBatch)
            .where(ProduceBatch.id == sale.produce_batch_id)
            .values(status=BatchStatus.SOLD, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        db.commit()
        logger.info(f"Sale {sale_id} marked as SOLD to {sale.sold_to_id} for {sale.final_price}")

        sale = db.query(Sale).populate_existing().filter(Sale.id == sale_id).one()
        self._record_market_price(db, sale)

        winner = db.query(User).filter(User.id == sale.sold_to_id).first()
        self._notify(sale, AuctionStatus.SOLD, winner)

    def _settle_unsold(self, db: Session, sale_id: UUID):
        sale = db.query(Sale).populate_existing().filter(Sale.id == sale_id).one()

        # Release the batch so the farmer can relist it
        db.execute(
            update(ProduceBatch)
            .where(ProduceBatch.id == sale.produce_batch_id)
            .values(status=BatchStatus.AVAILABLE, sale_id=None, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        db.commit()
        logger.info(f"Sale {sale_id} marked as UNSOLD, produce batch released")

        self._notify(sale, AuctionStatus.UNSOLD)

    def _record_market_price(self, db: Session, sale: Sale):
        if self.market_price_recorder is None:
            return
        sale_id = sale.id
        try:
            self.market_price_recorder(db, sale)
        except Exception:
            db.rollback()
            logger.exception(f"Failed to record market price for sale {sale_id}")

    def _notify(self, sale: Sale, outcome: str, winner: Optional[User] = None):
        sale_id = sale.id
        try:
            notify_auction_ended(self.notifier, sale, outcome, winner)
        except Exception as e:
            logger.error(f"Failed to publish auction end for sale {sale_id}: {str(e)}")
