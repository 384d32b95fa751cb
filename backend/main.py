from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import os
import logging
from dotenv import load_dotenv

load_dotenv()

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration
import inngest.fast_api
from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded

from app.inngest import inngest_client, all_functions
from app.inngest.events import INNGEST_ENABLED
from app.routers import prep_sheet, calendar_meetings

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

SENTRY_DSN = os.getenv("SENTRY_DSN")
SENTRY_ENABLED = bool(SENTRY_DSN)
if SENTRY_ENABLED:
    sentry_sdk.init(
        dsn=SENTRY_DSN,
        traces_sample_rate=0.1,
        environment=os.getenv("ENVIRONMENT", "development"),
        release=os.getenv("RELEASE_VERSION", "0.1.0"),
        integrations=[
            FastApiIntegration(),
            StarletteIntegration(),
        ],
        # Filter out health checks
        before_send=lambda event, hint: None if event.get("request", {}).get("url", "").endswith("/health") else event,
    )
    logger.info("Sentry error tracking enabled")
else:
    logger.info("Sentry DSN not configured, error tracking disabled")

# Rate limiter configuration
# Uses remote address for identification
limiter = Limiter(key_func=get_remote_address)

app = FastAPI(
    title="Call Prep API",
    description="Meeting resolution and call preparation sheets",
    version="0.1.0"
)

app.state.limiter = limiter


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    logger.warning(f"Rate limit exceeded for {get_remote_address(request)}")
    return JSONResponse(
        status_code=429,
        content={
            "error": "rate_limit_exceeded",
            "message": "Too many requests. Please try again later.",
            "retry_after": exc.detail
        }
    )

# CORS configuration
allowed_origins = os.getenv("ALLOWED_ORIGINS", "http://localhost:3000").split(",")

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(prep_sheet.router)  # Already has prefix /api/v1/prep-sheet
app.include_router(calendar_meetings.router)  # Already has prefix /api/v1/calendar-meetings

# Inngest webhook endpoint for background regeneration
if INNGEST_ENABLED:
    inngest.fast_api.serve(
        app,
        inngest_client,
        all_functions,
    )
    logger.info("Inngest workflow orchestration enabled at /api/inngest")


@app.get("/")
def read_root():
    return {
        "message": "Welcome to the Call Prep API",
        "version": "0.1.0",
        "status": "running",
        "docs": "/docs"
    }


@app.get("/health")
def health_check():
    return {
        "status": "ok",
        "environment": os.getenv("ENVIRONMENT", "development"),
        "sentry": "enabled" if SENTRY_ENABLED else "disabled",
        "inngest": "enabled" if INNGEST_ENABLED else "disabled"
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
