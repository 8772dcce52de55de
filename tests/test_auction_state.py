import pytest

from agrobid.utils.auction_state import AuctionStateMachine, AuctionStatus
from agrobid.utils.permissions import can_place_bid, has_role


@pytest.mark.parametrize("from_status,to_status", [
    ("pending", "active"),
    ("pending", "cancelled"),
    ("active", "sold"),
    ("active", "unsold"),
    ("active", "cancelled"),
])
def test_allowed_transitions(from_status, to_status):
    assert AuctionStateMachine.can_transition(from_status, to_status)


@pytest.mark.parametrize("from_status,to_status", [
    ("pending", "sold"),
    ("active", "pending"),
    ("sold", "unsold"),
    ("unsold", "active"),
    ("cancelled", "active"),
    ("archived", "active"),
])
def test_forbidden_transitions(from_status, to_status):
    assert not AuctionStateMachine.can_transition(from_status, to_status)


def test_terminal_statuses():
    terminal = [s for s in AuctionStateMachine.TRANSITIONS if AuctionStateMachine.is_terminal_status(s)]
    assert sorted(terminal) == ["cancelled", "sold", "unsold"]


def test_only_active_sales_receive_bids():
    assert AuctionStateMachine.can_receive_bids(AuctionStatus.ACTIVE)
    assert not AuctionStateMachine.can_receive_bids(AuctionStatus.PENDING)


def test_cancellation_sources():
    assert sorted(AuctionStateMachine.sources_of(AuctionStatus.CANCELLED)) == ["active", "pending"]


def test_roles(user_factory):
    buyer, farmer, admin = user_factory("buyer"), user_factory("farmer"), user_factory("admin")

    assert can_place_bid(buyer)
    assert not can_place_bid(farmer)
    assert not can_place_bid(admin)
    assert has_role(admin, "farmer")
    assert not has_role(buyer, "farmer")
