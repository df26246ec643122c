from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging

from .config import settings
from .routers import carbon

logger = logging.getLogger("carbonlog")
logger.setLevel(settings.LOG_LEVEL.upper())

app = FastAPI(
    title="Carbonlog",
    description="Carbon footprint estimates for everyday activities",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# API routes
app.include_router(carbon.router, prefix="/api")


@app.get("/health")
def health():
    return {"status": "ok", "app": settings.APP_NAME}


@app.on_event("startup")
def log_estimator_mode():
    """Say which estimation path is active."""
    if settings.GEMINI_API_KEY:
        logger.info("Gemini estimates enabled (model %s)", settings.GEMINI_MODEL)
    else:
        logger.info("GEMINI_API_KEY not set — rule-based estimates only")
