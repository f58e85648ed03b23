"""
DoseKeeper Backend
Main FastAPI application with the dose API and reminder scheduler
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Configuration and database
from config import settings
from database import init_db, DatabaseHealthCheck

from api import include_routers
from actions.dose_engine import InvalidTransition, DuplicateDose
from tools.clock import utcnow

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format=settings.LOG_FORMAT
)
logger = logging.getLogger(__name__)


# ==================== LIFESPAN ====================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup and shutdown"""
    # Startup
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    logger.info(f"Environment: {settings.ENV}")

    # Initialize database
    try:
        init_db()
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}")
        raise

    scheduler = None
    if settings.SCHEDULER_ENABLED:
        from actions.reminder_engine import get_reminder_scheduler
        scheduler = get_reminder_scheduler()
        await scheduler.start()
    else:
        logger.info("Reminder scheduler disabled")

    yield

    # Shutdown
    if scheduler is not None:
        await scheduler.stop()
        await scheduler.notifier.close()
    logger.info(f"Shutting down {settings.APP_NAME}")


# ==================== APP INITIALIZATION ====================

app = FastAPI(
    title=settings.APP_NAME,
    description="""
    ## DoseKeeper API

    Medication dose adherence tracking with reminders and rewards.

    ### Features
    - **Dose Logging**: Taken, missed, skipped and delayed doses with late-logging rules
    - **Adherence Reports**: Period statistics, heatmap calendar and trends
    - **Rewards**: Points, levels, streaks and achievements
    - **Reminders**: Upcoming and overdue notifications by email and push
    """,
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Attach modular API routers
include_routers(app, prefix=settings.API_PREFIX)


# ==================== EXCEPTION HANDLERS ====================

def _error_response(status_code: int, message) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": True,
            "message": message,
            "status_code": status_code,
            "timestamp": utcnow().isoformat()
        }
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request, exc: HTTPException):
    return _error_response(exc.status_code, exc.detail)


@app.exception_handler(DuplicateDose)
async def duplicate_dose_handler(request, exc: DuplicateDose):
    return _error_response(409, str(exc))


@app.exception_handler(InvalidTransition)
async def invalid_transition_handler(request, exc: InvalidTransition):
    return _error_response(422, str(exc))


@app.exception_handler(Exception)
async def general_exception_handler(request, exc: Exception):
    logger.error(f"Unexpected error: {exc}", exc_info=True)
    return _error_response(
        500,
        "An unexpected error occurred" if not settings.DEBUG else str(exc)
    )


# ==================== HEALTH ENDPOINTS ====================

@app.get("/", tags=["Health"])
async def root():
    """Root endpoint - basic health check"""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "healthy",
        "timestamp": utcnow().isoformat()
    }


@app.get("/health", tags=["Health"])
async def health_check():
    """Detailed health check endpoint"""
    db_connected = DatabaseHealthCheck.is_connected()

    scheduler_status = {"enabled": settings.SCHEDULER_ENABLED, "running": False}
    if settings.SCHEDULER_ENABLED:
        from actions.reminder_engine import get_reminder_scheduler
        scheduler_status["running"] = get_reminder_scheduler().is_running

    return {
        "status": "healthy" if db_connected else "degraded",
        "timestamp": utcnow().isoformat(),
        "checks": {
            "database": {
                "status": "up" if db_connected else "down",
                "type": "sqlite" if "sqlite" in settings.DATABASE_URL else "postgresql"
            },
            "scheduler": scheduler_status,
            "notifications": {
                "email": bool(settings.SMTP_HOST),
                "push": bool(settings.PUSH_GATEWAY_URL)
            }
        },
        "version": settings.APP_VERSION,
        "environment": settings.ENV
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )
