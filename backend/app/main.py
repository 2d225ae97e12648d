import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

from app.config import get_settings
from app.logging_config import setup_logging
from app.routers import wagers, users, notifications, activity, leaderboard, live
from app.rate_limit import limiter, rate_limit_exceeded_handler
from app.services.errors import LedgerError

settings = get_settings()
setup_logging(settings.log_level, settings.log_file)

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Wager Ledger API",
    description="Proposition wagers with fixed American odds, settled in points",
    version="1.0.0"
)

# Rate limiting setup
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    """Map ledger failures to their HTTP status with a stable error code."""
    if exc.status_code >= 500:
        logger.warning(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
    )


# CORS middleware for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ],
    allow_origin_regex=r"http://127\.0\.0\.1:\d+",  # Allow any localhost port for dev
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(users.router)
app.include_router(wagers.router)
app.include_router(notifications.router)
app.include_router(activity.router)
app.include_router(leaderboard.router)
app.include_router(live.router)


@app.get("/")
async def root():
    return {
        "name": "Wager Ledger API",
        "version": "1.0.0",
        "docs": "/docs"
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy", "store": settings.store_backend}
