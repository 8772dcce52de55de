import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from agrobid.api import admin_jobs, bids, live, sales
from agrobid.core.config import settings
from agrobid.core.rate_limit import limiter
from agrobid.db.session import Base, engine
from agrobid.services.errors import AuctionError
from agrobid.services.notification_service import sale_event_hub
from agrobid.services.scheduler_service import scheduler_service

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)

Base.metadata.create_all(bind=engine)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.
    """
    # Startup
    logger.info("Starting AgroBid API...")
    sale_event_hub.bind_loop(asyncio.get_running_loop())

    if settings.AUCTION_SWEEP_ENABLED:
        try:
            scheduler_service.start()
            logger.info("Scheduler service started successfully")
        except Exception as e:
            logger.error(f"Failed to start scheduler: {str(e)}")
    else:
        logger.info("Auction sweep disabled, scheduler not started")

    yield

    # Shutdown
    logger.info("Shutting down AgroBid API...")
    try:
        scheduler_service.stop()
        logger.info("Scheduler service stopped successfully")
    except Exception as e:
        logger.error(f"Error stopping scheduler: {str(e)}")
    sale_event_hub.unbind_loop()


app = FastAPI(
    title="AgroBid API",
    lifespan=lifespan
)

# Add rate limiter to app state
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(AuctionError)
async def auction_error_handler(request: Request, exc: AuctionError):
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_dict()))


# Include routers
app.include_router(bids.router)
app.include_router(sales.router)
app.include_router(live.router)
app.include_router(admin_jobs.router)

@app.get("/")
@limiter.limit("60/minute")
def root(request: Request):
    return {"message": "Welcome to AgroBid API"}

@app.get("/health")
@limiter.limit("200/minute")  # Allow more for monitoring
def health_check(request: Request):
    """Health check endpoint with scheduler status."""
    return {
        "status": "healthy",
        "scheduler": {
            "running": scheduler_service.scheduler.running,
            "jobs": scheduler_service.get_job_status()
        }
    }
