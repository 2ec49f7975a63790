from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from contextlib import asynccontextmanager
from slowapi.errors import RateLimitExceeded
import asyncio
import logging
import time
import uuid

from . import __version__
from .config import settings
from .database import create_tables, SessionLocal
from .errors import BookingError
from .utils.logging_config import setup_logging, get_logger, set_request_context, clear_request_context
from .utils.rate_limiter import limiter
from .routers import availability, reservation_requests, booking, health

logger = logging.getLogger(__name__)
access_logger = get_logger("booking_app.access")


async def run_outbox_worker(stop_event: asyncio.Event):
    """Background loop delivering outbox events to the message bus"""
    from .services.outbox_worker import OutboxProcessor

    poll_interval = settings.worker_poll_interval
    batch_size = settings.worker_batch_size
    logger.info(f"Outbox worker started (interval: {poll_interval}s, batch: {batch_size})")

    while not stop_event.is_set():
        worker_db = SessionLocal()
        try:
            success, failed = OutboxProcessor(worker_db).process_batch(limit=batch_size)
            if success + failed > 0:
                logger.info(f"Outbox worker: {success} delivered, {failed} failed")
        except Exception as e:
            logger.error(f"Outbox worker error: {e}", exc_info=True)
        finally:
            worker_db.close()

        try:
            await asyncio.wait_for(stop_event.wait(), timeout=poll_interval)
        except asyncio.TimeoutError:
            pass


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    from .services.reservation_scheduler import start_reservation_scheduler, stop_reservation_scheduler

    setup_logging(level=settings.log_level, json_format=settings.log_json or settings.is_production)
    logger.info(f"Starting booking service ({settings.environment})")
    logger.info(f"CORS origins: {settings.cors_origins}")

    create_tables()

    stop_event = asyncio.Event()
    worker_task = None
    if settings.events_enabled:
        worker_task = asyncio.create_task(run_outbox_worker(stop_event))
    else:
        logger.warning("Change events disabled, outbox worker not started")

    start_reservation_scheduler()

    yield

    logger.info("Shutting down booking service...")
    stop_reservation_scheduler()
    stop_event.set()
    if worker_task:
        worker_task.cancel()
        try:
            await worker_task
        except asyncio.CancelledError:
            pass
        logger.info("Outbox worker stopped")


app = FastAPI(
    title="Booking Service API",
    description="Accommodation availability calendar and reservation lifecycle",
    version=__version__,
    lifespan=lifespan
)

# Rate limiter state
app.state.limiter = limiter


# ================================
# CORS MIDDLEWARE - MUST BE FIRST!
# ================================
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
)


# Request ID Middleware
class RequestIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4())[:8])
        request.state.request_id = request_id
        set_request_context(request_id)
        start = time.time()
        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            access_logger.api_request(
                request.method,
                request.url.path,
                response.status_code,
                round((time.time() - start) * 1000, 2)
            )
            return response
        finally:
            clear_request_context()


app.add_middleware(RequestIdMiddleware)


@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError):
    if exc.status_code >= 500:
        logger.error(f"{exc.code}: {exc.message}")
    else:
        logger.info(f"{exc.code}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    return JSONResponse(
        status_code=422,
        content={"error": {"code": "VALIDATION_ERROR", "message": str(exc)}}
    )


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    return JSONResponse(
        status_code=429,
        content={"error": {"code": "RATE_LIMITED", "message": "Too many requests, try again later"}}
    )


app.include_router(availability.router)
app.include_router(reservation_requests.router)
app.include_router(booking.router)
app.include_router(health.router)


@app.get("/")
async def root():
    return {
        "message": "Booking Service API",
        "version": __version__,
        "docs": "/docs",
        "status": "running"
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy"}
