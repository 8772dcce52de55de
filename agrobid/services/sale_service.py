"""
Sale Service - Read and list sales, and handle seller cancellation
"""
import logging
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.orm import Session

from agrobid.db.models import Bid, ProduceBatch, Sale, User, utcnow
from agrobid.services.bid_service import minimum_acceptable_bid
from agrobid.services.errors import InvalidTransition, NotSaleOwner, SaleNotFound
from agrobid.services.notification_service import Notifier, notify_auction_ended, sale_event_hub
from agrobid.utils.auction_state import AuctionStateMachine, AuctionStatus, BatchStatus, BidStatus
from agrobid.utils.permissions import is_admin

logger = logging.getLogger(__name__)


def get_sale(db: Session, sale_id: UUID) -> Sale:
    sale = db.query(Sale).filter(Sale.id == sale_id).first()
    if not sale:
        raise SaleNotFound(sale_id)
    return sale


def list_marketplace_sales(db: Session, status: Optional[str] = AuctionStatus.ACTIVE) -> List[Sale]:
    """Sales open to buyers, newest first. Pass status=None for every status."""
    query = db.query(Sale)
    if status:
        query = query.filter(Sale.status == status)
    return query.order_by(Sale.created_at.desc(), Sale.id.desc()).all()


def list_seller_sales(db: Session, seller_id: UUID, status: Optional[str] = None) -> List[Sale]:
    """A seller's own sales, newest first, optionally narrowed to one status."""
    query = db.query(Sale).filter(Sale.seller_id == seller_id)
    if status:
        query = query.filter(Sale.status == status)
    return query.order_by(Sale.created_at.desc(), Sale.id.desc()).all()


def next_minimum_bid(sale: Sale, min_increment: Decimal) -> Optional[Decimal]:
    """Lowest bid the sale would accept right now, or None when it takes no bids."""
    if AuctionStateMachine.is_terminal_status(sale.status):
        return None
    return minimum_acceptable_bid(sale, min_increment)


def cancel_sale(
    db: Session,
    sale_id: UUID,
    seller: User,
    notifier: Notifier = sale_event_hub
) -> Sale:
    """
    Cancel a pending or active sale on the seller's request.

    Outstanding bids are marked lost and the produce batch is released so it
    can be listed again.
    """
    sale = get_sale(db, sale_id)
    if sale.seller_id != seller.id and not is_admin(seller):
        raise NotSaleOwner("Not authorized to cancel this sale")
    if not AuctionStateMachine.can_transition(sale.status, AuctionStatus.CANCELLED):
        raise InvalidTransition(
            f"Cannot cancel a sale that is '{sale.status}'",
            {"status": sale.status}
        )

    # Status may have moved since the read above
    cancellable = AuctionStateMachine.sources_of(AuctionStatus.CANCELLED)
    result = db.execute(
        update(Sale)
        .where(Sale.id == sale_id, Sale.status.in_(cancellable))
        .values(status=AuctionStatus.CANCELLED, cancelled_at=utcnow(), updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    if not result.rowcount:
        db.rollback()
        sale = get_sale(db, sale_id)
        raise InvalidTransition(
            f"Cannot cancel a sale that is '{sale.status}'",
            {"status": sale.status}
        )

    db.execute(
        update(Bid)
        .where(Bid.sale_id == sale_id, Bid.status == BidStatus.ACTIVE)
        .values(status=BidStatus.LOST, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    db.execute(
        update(ProduceBatch)
        .where(ProduceBatch.id == sale.produce_batch_id)
        .values(status=BatchStatus.AVAILABLE, sale_id=None, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    db.commit()
    logger.info(f"Sale {sale_id} cancelled by {seller.id}")

    sale = db.query(Sale).populate_existing().filter(Sale.id == sale_id).one()
    try:
        notify_auction_ended(notifier, sale, AuctionStatus.CANCELLED)
    except Exception as e:
        logger.error(f"Failed to publish cancellation for sale {sale_id}: {str(e)}")
    return sale
