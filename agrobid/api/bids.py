from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
from uuid import UUID

from agrobid.core.config import settings
from agrobid.core.deps import get_current_buyer, get_current_user
from agrobid.core.rate_limit import limiter
from agrobid.db.models import User
from agrobid.db.session import get_db
from agrobid.schemas.bid import BidOut, BidPlace, BidPlaced, BidWithSaleOut, BuyerSaleSummaryOut
from agrobid.services.bid_service import bid_service

router = APIRouter(prefix="/bids", tags=["bids"])


@router.post("/place", response_model=BidPlaced, status_code=201)
@limiter.limit(settings.BID_RATE_LIMIT)
def place_bid(
    request: Request,
    payload: BidPlace,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_buyer),
):
    """
    Place a bid on an active sale.

    Rejections carry the current highest bid / minimum so the client can
    retry straight away. A 409 means another bid got in first.
    """
    placement = bid_service.place_bid(db, payload.sale_id, current_user, payload.amount)
    return {
        "message": "Bid placed successfully",
        "bid_id": placement.bid_id,
        "current_highest": placement.amount,
        "total_bids": placement.total_bids,
    }


@router.get("/my", response_model=list[BidWithSaleOut])
def list_my_bids(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """All bids placed by the current user, newest first"""
    return bid_service.list_bids_for_buyer(db, current_user.id)


@router.get("/my/unique", response_model=list[BuyerSaleSummaryOut])
def list_my_unique_bids(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """The current user's highest bid on each sale they joined"""
    return bid_service.list_unique_bids_for_buyer(db, current_user.id)


@router.get("/{sale_id}", response_model=list[BidOut])
def list_bids_for_sale(
    sale_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Bid history of a sale, highest first"""
    return bid_service.list_bids_for_sale(db, sale_id)
