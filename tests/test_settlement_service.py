"""
Tests for the auction settlement sweeper.
"""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from agrobid.db.models import Bid, MarketPrice, ProduceBatch, Sale
from agrobid.services.bid_service import BidAcceptanceService
from agrobid.services.notification_service import NotificationType
from agrobid.services.settlement_service import AuctionSettlementSweeper, SweepReport

START = datetime(2025, 3, 1, 9, 0, 0)
END = datetime(2025, 3, 1, 18, 0, 0)


@pytest.fixture
def sweeper(clock, notifier):
    return AuctionSettlementSweeper(clock=clock, notifier=notifier)


@pytest.fixture
def bidding(clock, notifier):
    return BidAcceptanceService(clock=clock, notifier=notifier, min_increment=Decimal("50"))


def reload(db, model, id_):
    return db.query(model).populate_existing().filter(model.id == id_).one()


def test_expired_sale_without_bids_is_unsold_and_batch_released(db, sweeper, clock, notifier, sale_factory):
    sale = sale_factory()
    batch_id = sale.produce_batch_id
    clock.now = END + timedelta(seconds=1)

    report = sweeper.run_sweep(db)

    assert report.unsold == [sale.id]
    assert report.sold == []
    assert reload(db, Sale, sale.id).status == "unsold"

    batch = reload(db, ProduceBatch, batch_id)
    assert batch.status == "available"
    assert batch.sale_id is None

    ended = notifier.of_type(NotificationType.AUCTION_ENDED)
    assert len(ended) == 1
    assert ended[0][2]["outcome"] == "unsold"
    assert ended[0][2]["winner"] is None


def test_expired_sale_with_bids_is_sold_to_highest_bidder(db, sweeper, bidding, clock, notifier, sale_factory, user_factory):
    sale = sale_factory(minimum_price=Decimal("1000"), quantity=10)
    a, b, c = user_factory(name="A"), user_factory(name="B"), user_factory(name="C", company_name="Kisan Foods")
    for buyer, amount in [(a, "1000"), (b, "1100"), (c, "1250")]:
        bidding.place_bid(db, sale.id, buyer, amount)
    notifier.events.clear()

    clock.now = END + timedelta(minutes=1)
    report = sweeper.run_sweep(db)

    assert report.sold == [sale.id]
    sale = reload(db, Sale, sale.id)
    assert sale.status == "sold"
    assert sale.sold_to_id == c.id
    assert sale.final_price == Decimal("1250")
    assert sale.sold_date == clock.now

    statuses = {bid.buyer_id: bid.status for bid in db.query(Bid).filter(Bid.sale_id == sale.id)}
    assert statuses == {a.id: "lost", b.id: "lost", c.id: "won"}
    assert reload(db, ProduceBatch, sale.produce_batch_id).status == "sold"

    price = db.query(MarketPrice).filter(MarketPrice.sale_id == sale.id).one()
    assert price.crop == "Wheat"
    assert price.price == Decimal("125.00")
    assert price.unit == "quintal"
    assert price.location == "Varanasi"

    [(sale_id, event, data)] = notifier.events
    assert event == NotificationType.AUCTION_ENDED
    assert data["outcome"] == "sold"
    assert data["winner"] == {"id": c.id, "name": "Kisan Foods"}
    assert data["final_price"] == Decimal("1250")


def test_second_sweep_changes_nothing(db, sweeper, bidding, clock, notifier, sale_factory, user_factory):
    sold = sale_factory()
    unsold = sale_factory()
    bidding.place_bid(db, sold.id, user_factory(), "1000")
    clock.now = END + timedelta(seconds=1)

    sweeper.run_sweep(db)
    events = len(notifier.events)
    prices = db.query(MarketPrice).count()

    report = sweeper.run_sweep(db)

    assert report.as_dict() == SweepReport().as_dict()
    assert len(notifier.events) == events
    assert db.query(MarketPrice).count() == prices
    assert reload(db, Sale, sold.id).status == "sold"
    assert reload(db, Sale, unsold.id).status == "unsold"


def test_settle_sale_twice_settles_once(db, sweeper, clock, sale_factory):
    sale = sale_factory()
    now = END + timedelta(seconds=1)

    assert sweeper.settle_sale(db, sale.id, now) == "unsold"
    assert sweeper.settle_sale(db, sale.id, now) is None


def test_pending_sale_is_activated_once_started(db, sweeper, clock, sale_factory):
    sale = sale_factory(status="pending")

    report = sweeper.run_sweep(db)

    assert report.activated == 1
    assert reload(db, Sale, sale.id).status == "active"


def test_pending_sale_before_start_stays_pending(db, sweeper, clock, sale_factory):
    sale = sale_factory(status="pending")
    clock.now = START - timedelta(minutes=5)

    report = sweeper.run_sweep(db)

    assert report.activated == 0
    assert reload(db, Sale, sale.id).status == "pending"


def test_pending_sale_whose_window_already_passed_settles_in_one_sweep(db, sweeper, clock, sale_factory):
    sale = sale_factory(status="pending")
    clock.now = END + timedelta(hours=1)

    report = sweeper.run_sweep(db)

    assert report.activated == 1
    assert report.unsold == [sale.id]
    assert reload(db, Sale, sale.id).status == "unsold"


def test_sale_is_not_closed_at_exact_end_time(db, sweeper, clock, sale_factory):
    sale = sale_factory()
    clock.now = END

    report = sweeper.run_sweep(db)

    assert report.unsold == []
    assert reload(db, Sale, sale.id).status == "active"


@pytest.mark.parametrize("status", ["sold", "unsold", "cancelled"])
def test_terminal_sales_are_left_alone(db, sweeper, clock, sale_factory, status):
    sale = sale_factory(status=status)
    clock.now = END + timedelta(days=1)

    sweeper.run_sweep(db)

    assert reload(db, Sale, sale.id).status == status


def test_market_price_failure_does_not_undo_settlement(db, clock, notifier, bidding, sale_factory, user_factory):
    def broken_recorder(session, sale):
        raise RuntimeError("market price table unavailable")

    sweeper = AuctionSettlementSweeper(clock=clock, notifier=notifier, market_price_recorder=broken_recorder)
    sale = sale_factory()
    buyer = user_factory()
    bidding.place_bid(db, sale.id, buyer, "1000")
    clock.now = END + timedelta(seconds=1)

    report = sweeper.run_sweep(db)

    assert report.sold == [sale.id]
    assert report.failed == []
    sale = reload(db, Sale, sale.id)
    assert sale.status == "sold"
    assert sale.sold_to_id == buyer.id
    assert db.query(MarketPrice).count() == 0
    assert len(notifier.of_type(NotificationType.AUCTION_ENDED)) == 1


def test_failing_sale_does_not_block_the_rest(db, clock, notifier, sale_factory, monkeypatch):
    first = sale_factory(end=END - timedelta(hours=1))
    second = sale_factory()
    first_id, second_id = first.id, second.id
    sweeper = AuctionSettlementSweeper(clock=clock, notifier=notifier)
    settle_unsold = sweeper._settle_unsold

    def fail_first(session, sale_id):
        if sale_id == first_id:
            raise RuntimeError("batch row locked")
        return settle_unsold(session, sale_id)

    monkeypatch.setattr(sweeper, "_settle_unsold", fail_first)
    clock.now = END + timedelta(seconds=1)

    report = sweeper.run_sweep(db)

    assert report.failed == [first_id]
    assert report.unsold == [second_id]
    assert reload(db, Sale, first_id).status == "active"
    assert reload(db, Sale, second_id).status == "unsold"

    # The next run picks the failed sale up again
    monkeypatch.setattr(sweeper, "_settle_unsold", settle_unsold)
    report = sweeper.run_sweep(db)
    assert report.unsold == [first_id]


def test_only_earliest_matching_bid_is_marked_won(db, sweeper, clock, sale_factory, user_factory):
    buyer = user_factory()
    sale = sale_factory()
    earlier = Bid(sale_id=sale.id, buyer_id=buyer.id, amount=Decimal("1000"), status="active",
                  created_at=START + timedelta(hours=1))
    later = Bid(sale_id=sale.id, buyer_id=buyer.id, amount=Decimal("1000"), status="active",
                created_at=START + timedelta(hours=2))
    db.add_all([earlier, later])
    sale.current_highest_bid = Decimal("1000")
    sale.highest_bidder_id = buyer.id
    sale.total_bids = 2
    db.commit()
    earlier_id, later_id = earlier.id, later.id
    clock.now = END + timedelta(seconds=1)

    sweeper.run_sweep(db)

    assert reload(db, Bid, earlier_id).status == "won"
    assert reload(db, Bid, later_id).status == "lost"


def test_sweep_without_market_price_recorder(db, clock, notifier, bidding, sale_factory, user_factory):
    sweeper = AuctionSettlementSweeper(clock=clock, notifier=notifier, market_price_recorder=None)
    sale = sale_factory()
    bidding.place_bid(db, sale.id, user_factory(), "1000")
    clock.now = END + timedelta(seconds=1)

    report = sweeper.run_sweep(db)

    assert report.sold == [sale.id]
    assert db.query(MarketPrice).count() == 0
