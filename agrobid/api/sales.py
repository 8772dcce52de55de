from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID

from agrobid.core.deps import get_current_user
from agrobid.db.models import User
from agrobid.db.session import get_db
from agrobid.schemas.sale import SaleDetail, SaleOut
from agrobid.services import sale_service
from agrobid.services.bid_service import bid_service
from agrobid.utils.auction_state import AuctionStateMachine, AuctionStatus

router = APIRouter(prefix="/sales", tags=["sales"])


def _check_status_filter(status: Optional[str]):
    if status and status not in AuctionStateMachine.TRANSITIONS:
        raise HTTPException(status_code=400, detail=f"Unknown sale status '{status}'")


@router.get("", response_model=List[SaleOut])
def list_marketplace_sales(
    status: Optional[str] = Query(AuctionStatus.ACTIVE),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Browse sales on the marketplace, newest first.

    Query Parameters:
    - status: sale status to list (default: active)
    """
    _check_status_filter(status)
    return sale_service.list_marketplace_sales(db, status)


@router.get("/my", response_model=List[SaleOut])
def list_my_sales(
    status: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """The current user's own sales, newest first, optionally filtered by status"""
    _check_status_filter(status)
    return sale_service.list_seller_sales(db, current_user.id, status)


@router.get("/{sale_id}", response_model=SaleDetail)
def get_sale(
    sale_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Current auction state of a sale, enough to rebuild a live view"""
    sale = sale_service.get_sale(db, sale_id)
    detail = SaleDetail.model_validate(sale)
    detail.next_minimum_bid = sale_service.next_minimum_bid(sale, bid_service.min_increment)
    return detail


@router.post("/{sale_id}/cancel", response_model=SaleOut)
def cancel_sale(
    sale_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Cancel a pending or active sale. Only the seller may cancel."""
    return sale_service.cancel_sale(db, sale_id, current_user)
