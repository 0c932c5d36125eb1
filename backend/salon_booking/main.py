import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .config import settings
from .database import init_db
from .exceptions import BookingEngineError
from .redis_client import redis_client
from .routers import availability, bookings, payments, waitlist
from .services.hold_expiry import hold_expiry_loop

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()

    sweeper = None
    if settings.stripe_api_key:
        sweeper = asyncio.create_task(hold_expiry_loop())
    else:
        logger.warning("STRIPE_API_KEY not set; deposits disabled, hold sweep not started")

    yield

    if sweeper:
        sweeper.cancel()
        await asyncio.gather(sweeper, return_exceptions=True)


app = FastAPI(title="Salon Booking API (SQLite)", lifespan=lifespan)


@app.exception_handler(BookingEngineError)
async def booking_engine_error_handler(request: Request, exc: BookingEngineError):
    if exc.http_status >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.code}")
    return JSONResponse(
        status_code=exc.http_status,
        content={"detail": exc.message, "code": exc.code, "retryable": exc.retryable},
    )


app.include_router(availability.router)
app.include_router(payments.router)
app.include_router(bookings.router)
app.include_router(waitlist.router)


@app.get("/health")
def health():
    return {"redis": redis_client.ping()}
