"""
SitePulse — visit analytics for the content site.
Dashboard read API entry point.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from sitepulse.api.analytics import router as analytics_router
from sitepulse.api.security import SecurityHeadersMiddleware
from sitepulse.config import get_settings

import structlog

structlog.configure(
    processors=[
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.add_log_level,
        structlog.dev.ConsoleRenderer() if get_settings().debug else structlog.processors.JSONRenderer(),
    ],
)

logger = structlog.get_logger()

VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("sitepulse_starting", visits_table=get_settings().visits_table)
    yield
    logger.info("sitepulse_shutting_down")


app = FastAPI(
    title="SitePulse",
    description="Visit and interaction analytics — summaries, trends and breakdowns.",
    version=VERSION,
    lifespan=lifespan,
    docs_url="/docs" if get_settings().debug else None,
    redoc_url="/redoc" if get_settings().debug else None,
    openapi_url="/openapi.json" if get_settings().debug else None,
)

app.add_middleware(SecurityHeadersMiddleware)

ALLOWED_ORIGINS = ["*"] if get_settings().debug else [
    "https://sitepulse.app",
    "https://www.sitepulse.app",
]
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET"],
    allow_headers=["Authorization", "Content-Type"],
)

# --- Routes ---
app.include_router(analytics_router)


@app.get("/health")
async def health():
    return {"status": "ok", "service": "sitepulse", "version": VERSION}
