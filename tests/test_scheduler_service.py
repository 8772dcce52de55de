
import pytest

from agrobid.db.models import Sale
from agrobid.db.session import SessionLocal
from agrobid.services.scheduler_service import AUCTION_SWEEP_JOB_ID, SchedulerService
from agrobid.services.settlement_service import AuctionSettlementSweeper


@pytest.fixture
def scheduler(clock, notifier):
    service = SchedulerService(
        sweeper=AuctionSettlementSweeper(clock=clock, notifier=notifier),
        session_factory=SessionLocal,
        interval_seconds=3600
    )
    yield service
    service.stop()


def test_scheduled_sweep_runs_in_its_own_session(db, scheduler, clock, sale_factory):
    sale = sale_factory()
    clock.advance(hours=7)

    report = scheduler.run_auction_sweep()

    assert report.unsold == [sale.id]
    assert db.query(Sale).populate_existing().filter(Sale.id == sale.id).one().status == "unsold"


def test_failed_sweep_is_logged_not_raised(scheduler, caplog):
    class ExplodingSweeper:
        def run_sweep(self, db):
            raise RuntimeError("database went away")

    scheduler.sweeper = ExplodingSweeper()

    assert scheduler.run_auction_sweep() is None
    assert "database went away" in caplog.text


def test_start_registers_single_sweep_job(scheduler):
    scheduler.start()
    scheduler.start()

    jobs = scheduler.get_job_status()
    assert [j["id"] for j in jobs] == [AUCTION_SWEEP_JOB_ID]
    assert jobs[0]["next_run"] is not None
    assert scheduler.trigger_job(AUCTION_SWEEP_JOB_ID) is True
    assert scheduler.trigger_job("missing") is False
