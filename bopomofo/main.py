"""Main FastAPI application for Bopomofo Mastery."""
from contextlib import asynccontextmanager
from datetime import datetime
from fastapi import FastAPI, Depends
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy import text
from sqlalchemy.orm import Session
from bopomofo.routers import device, learn, checkpoint
from bopomofo.db.init_db import init_db
from bopomofo.db.database import get_db
from bopomofo.logging_config import setup_logging, get_logger
from bopomofo.rate_limit import limiter
from bopomofo.services.runtime import init_runtime, shutdown_runtime
from bopomofo.config import settings
from bopomofo.constants import AUDIO_DIR

# Set up logging on module import
log_level = settings.LOG_LEVEL if settings.LOG_LEVEL else None
setup_logging(log_level)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize database and process runtime on startup.

    This function runs once when the application starts, performing:
    - Database table creation and migrations
    - Glyph font loading, reporter worker pool, session registry
    """
    logger.info("Application startup initiated")
    try:
        init_db()
        logger.info("Database initialization completed successfully")
        init_runtime()
    except Exception as e:
        logger.error(f"Startup failed: {e}", exc_info=True)
        raise

    yield

    shutdown_runtime()
    logger.info("Application shutdown complete")


app = FastAPI(
    title="Bopomofo Mastery API",
    description="""
    Drill service for teaching Bopomofo (Zhuyin) symbols to early-grade learners.

    ## Features

    - **Learn**: Hear each symbol and practise tracing it
    - **Explainable Trace Grading**: Coverage of the glyph's tolerance band, no trained model
    - **Checkpoint**: One level per enabled symbol, gated by teacher-set attempts and accuracy
    - **Result Delivery**: On full clearance, a summary is posted to the teacher's endpoint; it can be sent again from the all-clear state

    ## Checkpoint Flow

    1. **Start**: POST `/api/checkpoint/start` (requires a saved student ID)
    2. **Ask**: POST `/api/checkpoint/question` for 4 options
    3. **Answer / Trace**: POST `/api/checkpoint/answer` or `/api/checkpoint/trace`
    4. **Evaluate**: POST `/api/checkpoint/evaluate` once the required attempts are reached
    5. **Restart**: POST `/api/checkpoint/restart` from any phase

    ## Grading Rule

    - score = clamp(round(coverage * 130 + 12 - outside_ratio * 18), 0, 100)
    - a trace passes at 60 or more
    - a level passes when attempts >= required and accuracy >= required
    """,
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_tags=[
        {
            "name": "device",
            "description": "Device session and persisted local state"
        },
        {
            "name": "learn",
            "description": "Symbol catalog, pronunciation and practice tracing"
        },
        {
            "name": "checkpoint",
            "description": "Mastery-gated checkpoint sessions"
        },
        {
            "name": "health",
            "description": "Service health and readiness checks"
        }
    ]
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)

logger.info(f"Rate limiting {'enabled' if limiter.enabled else 'disabled'}: default {settings.RATE_LIMIT_DEFAULT} per IP")

if settings.is_production:
    from starlette.middleware.sessions import SessionMiddleware
    app.add_middleware(SessionMiddleware, secret_key=settings.SECRET_KEY)
    logger.info("Session middleware enabled")

# Pre-generated audio clips (generate_audio.py); may be absent in development
app.mount("/static/audio", StaticFiles(directory=AUDIO_DIR, check_dir=False), name="audio")

# Include routers
app.include_router(device.router)
app.include_router(learn.router)
app.include_router(checkpoint.router)


@app.get("/health", tags=["health"])
async def health_check(db: Session = Depends(get_db)):
    """Health check endpoint with database verification.

    Returns:
        200 OK: Service is healthy and the device state store is accessible
        503 Service Unavailable: Database connection failed
    """
    timestamp = datetime.utcnow().isoformat() + "Z"

    try:
        db.execute(text("SELECT 1"))
        logger.debug("Health check passed")

        return {
            "status": "healthy",
            "database": "connected",
            "timestamp": timestamp,
            "environment": settings.ENVIRONMENT,
            "result_endpoint": "configured" if settings.RESULT_ENDPOINT else "not configured"
        }
    except Exception as e:
        logger.error(f"Health check failed: {e}", exc_info=True)

        return JSONResponse(
            status_code=503,
            content={
                "status": "unhealthy",
                "database": "disconnected",
                "error": str(e),
                "timestamp": timestamp
            }
        )


@app.get("/readiness", tags=["health"])
async def readiness_check(db: Session = Depends(get_db)):
    """Readiness check for container orchestration.

    Returns:
        200 OK: Service is ready
        503 Service Unavailable: Service is not ready
    """
    try:
        db.execute(text("SELECT 1"))
        return {"status": "ready", "timestamp": datetime.utcnow().isoformat() + "Z"}
    except Exception as e:
        logger.error(f"Readiness check failed: {e}")
        return JSONResponse(
            status_code=503,
            content={"status": "not ready", "error": str(e)}
        )
