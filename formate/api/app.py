"""
FastAPI application factory for the Formate plan engine.

Creates and configures the FastAPI app and mounts the plan routes.

Run with:
    uvicorn formate.api.app:app --reload
"""

import logging
import os

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from formate.api.routes import configure_routes, router

# Load environment variables from .env
load_dotenv()

# Logging
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""

    application = FastAPI(
        title="Formate",
        description="Conversational form-plan validation and branching engine",
        version="0.1.0",
    )

    # CORS: all origins unless CORS_ALLOWED_ORIGINS is set
    allowed_origins = os.getenv("CORS_ALLOWED_ORIGINS", "*").split(",")
    application.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    plans_dir = os.getenv("FORMATE_PLANS_DIR")
    configure_routes(plans_dir)
    application.include_router(router, prefix="/api")

    logger.info("Formate API configured (plans dir: %s)", plans_dir or "bundled")

    return application


# Create the app instance (used by uvicorn)
app = create_app()
