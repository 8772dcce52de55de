from pydantic import BaseModel
from typing import Optional
from uuid import UUID
from datetime import datetime
from decimal import Decimal


class SaleOut(BaseModel):
    id: UUID
    produce_batch_id: UUID
    seller_id: UUID
    status: str  # pending, active, sold, unsold, cancelled

    minimum_price: Decimal
    current_highest_bid: Optional[Decimal] = None
    highest_bidder_id: Optional[UUID] = None
    total_bids: int

    auction_start_date: datetime
    auction_end_date: datetime

    # Settlement outcome
    sold_to_id: Optional[UUID] = None
    sold_date: Optional[datetime] = None
    final_price: Optional[Decimal] = None
    cancelled_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class SaleDetail(SaleOut):
    """Sale snapshot plus the lowest bid it would accept right now"""
    next_minimum_bid: Optional[Decimal] = None
