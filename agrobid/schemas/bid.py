# agrobid/schemas/bid.py
from pydantic import BaseModel
from typing import Optional, Union
from uuid import UUID
from datetime import datetime
from decimal import Decimal

from agrobid.schemas.sale import SaleOut


class BidPlace(BaseModel):
    sale_id: UUID
    # Parsed and range-checked by the bid service so bad input gets the
    # same error shape as every other rejection
    amount: Optional[Union[int, float, str]] = None


class BidPlaced(BaseModel):
    message: str
    bid_id: UUID
    current_highest: Decimal
    total_bids: int


class BidOut(BaseModel):
    id: UUID
    sale_id: UUID
    buyer_id: UUID
    buyer_name: str
    amount: Decimal
    status: str  # active, won, lost
    created_at: datetime

    class Config:
        from_attributes = True


class BidWithSaleOut(BidOut):
    sale: SaleOut


class BuyerSaleSummaryOut(BaseModel):
    """A buyer's highest bid on one sale and whether it currently leads"""
    sale: SaleOut
    highest_bid: BidOut
    bid_count: int
    is_leading: bool

    class Config:
        from_attributes = True
