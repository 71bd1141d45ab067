"""
FastAPI application factory for formgen.

Creates and configures the FastAPI app: the CSRF token store, the
translator and the shared form factory, then mounts the routes.

Run with:
    uvicorn formgen.api.app:app --reload
"""

import logging
import os
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from formgen.api.routes import configure_routes, router
from formgen.core.form import FormFactory
from formgen.core.security import (
    DEFAULT_TOKEN_TTL_SECONDS,
    CsrfTokenManager,
    InMemoryTokenStore,
    SQLiteTokenStore,
)
from formgen.core.translation import FormTranslator
from formgen.core.types import create_default_registry

# Load environment variables from .env
load_dotenv()

# Logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def _create_token_store():
    backend = os.getenv("FORMGEN_CSRF_STORE", "memory").strip().lower()
    if backend == "sqlite":
        db_path = os.getenv("FORMGEN_CSRF_DB_PATH", "data/csrf_tokens.db")
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        logger.info("CSRF token store: SQLite (%s)", db_path)
        return SQLiteTokenStore(db_path)
    if backend != "memory":
        logger.warning("Unknown FORMGEN_CSRF_STORE '%s', using in-memory store", backend)
    return InMemoryTokenStore()


def _create_translator() -> FormTranslator:
    translator = FormTranslator(locale=os.getenv("FORMGEN_DEFAULT_LOCALE", "en_US"))
    translations_dir = os.getenv("FORMGEN_TRANSLATIONS_DIR")
    if translations_dir:
        translator.add_resource(translations_dir)
        logger.info("Translations loaded from %s", translations_dir)
    return translator


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""

    application = FastAPI(
        title="formgen",
        description="Server-side form building, transformation and validation",
        version="0.1.0",
    )

    # CORS: allow all origins in development
    allowed_origins = os.getenv("CORS_ALLOWED_ORIGINS", "*").split(",")
    application.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    token_ttl = int(os.getenv("FORMGEN_CSRF_TOKEN_TTL_SECONDS", str(DEFAULT_TOKEN_TTL_SECONDS)))
    csrf_manager = CsrfTokenManager(_create_token_store(), ttl_seconds=token_ttl)

    factory = FormFactory(
        registry=create_default_registry(),
        translator=_create_translator(),
        csrf_manager=csrf_manager,
    )

    configure_routes(factory, csrf_manager)
    application.include_router(router, prefix="/api")

    logger.info("formgen ready: %d field types, CSRF token TTL %d seconds",
                len(factory.registry.type_names()), token_ttl)
    return application


# Create the app instance (used by uvicorn)
app = create_app()
