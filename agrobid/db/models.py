from sqlalchemy import Column, String, DateTime, ForeignKey, Integer, Numeric, Float, Uuid, Index
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
import uuid
from agrobid.db.session import Base


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class User(Base):
    """Marketplace account (farmer, buyer or admin). Owned by the auth service."""
    __tablename__ = "users"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    role = Column(String, nullable=False, default="buyer")  # farmer, buyer, admin
    name = Column(String, nullable=False)
    company_name = Column(String, nullable=True)
    contact_person = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    @property
    def display_name(self) -> str:
        return self.company_name or self.contact_person or self.name or "Anonymous"


class ProduceBatch(Base):
    """A farmer's harvested crop output that can be listed for sale."""
    __tablename__ = "produce_batches"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    farmer_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False)
    crop_name = Column(String, nullable=False)
    quantity = Column(Float, nullable=False)
    unit = Column(String, nullable=False, default="quintal")  # kg, quintal, ton
    storage_location = Column(String, nullable=True)

    # Status: available, listed-for-sale, sold, reserved
    status = Column(String, default="available")
    sale_id = Column(Uuid(as_uuid=True), nullable=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    farmer = relationship("User", foreign_keys=[farmer_id])


class Sale(Base):
    __tablename__ = "sales"
    __table_args__ = (
        Index("ix_sales_status_start", "status", "auction_start_date"),
        Index("ix_sales_status_end", "status", "auction_end_date"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    produce_batch_id = Column(Uuid(as_uuid=True), ForeignKey("produce_batches.id"), nullable=False, unique=True)
    seller_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)

    # Price state (mutated only while active)
    minimum_price = Column(Numeric(14, 2), nullable=False)
    current_highest_bid = Column(Numeric(14, 2), nullable=True)
    highest_bidder_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=True)
    total_bids = Column(Integer, nullable=False, default=0)

    auction_start_date = Column(DateTime, nullable=False)
    auction_end_date = Column(DateTime, nullable=False)

    # Status: pending, active, sold, unsold, cancelled
    status = Column(String, nullable=False, default="pending")

    # Settlement outcome (set once, at close)
    sold_to_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=True)
    sold_date = Column(DateTime, nullable=True)
    final_price = Column(Numeric(14, 2), nullable=True)
    cancelled_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    produce_batch = relationship("ProduceBatch", foreign_keys=[produce_batch_id])
    seller = relationship("User", foreign_keys=[seller_id])
    highest_bidder = relationship("User", foreign_keys=[highest_bidder_id])
    sold_to = relationship("User", foreign_keys=[sold_to_id])
    bids = relationship("Bid", back_populates="sale")


class Bid(Base):
    __tablename__ = "bids"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    sale_id = Column(Uuid(as_uuid=True), ForeignKey("sales.id"), nullable=False, index=True)
    buyer_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    amount = Column(Numeric(14, 2), nullable=False)

    # Status: active, won, lost
    status = Column(String, nullable=False, default="active")
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    sale = relationship("Sale", back_populates="bids")
    buyer = relationship("User", foreign_keys=[buyer_id])

    @property
    def buyer_name(self) -> str:
        return self.buyer.display_name if self.buyer else "Anonymous"


class MarketPrice(Base):
    """Observed price points, fed by settled auctions."""
    __tablename__ = "market_prices"
    __table_args__ = (Index("ix_market_prices_crop_date", "crop", "date"),)

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    crop = Column(String, nullable=False)
    date = Column(DateTime, nullable=False)
    price = Column(Numeric(14, 2), nullable=False)  # per unit
    unit = Column(String, default="quintal")
    location = Column(String, nullable=True)
    sale_id = Column(Uuid(as_uuid=True), ForeignKey("sales.id"), nullable=True)
    created_at = Column(DateTime, default=utcnow)
