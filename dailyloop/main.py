import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

# Load env from the project root .env
project_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if "PYTEST_CURRENT_TEST" not in os.environ:
    load_dotenv(dotenv_path=os.path.join(project_dir, ".env"))

from dailyloop.core.config import settings, validate_config, allowed_origins
from dailyloop.core.database import create_all_tables
from dailyloop.core.errors import (
    AppError,
    ConfigurationError,
    app_error_handler,
    http_error_handler,
    unhandled_exception_handler,
)
from dailyloop.core.logging import configure_logging
from dailyloop.core.middleware.request_id import RequestIdMiddleware
from dailyloop.core.validation import validate_env
from dailyloop.api import habits, health, sequences

configure_logging(settings.ENV)
validate_env()
validate_config(strict=getattr(settings, "CONFIG_STRICT", False))


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = logging.getLogger("dailyloop")
    logger.info("Starting dailyloop service...")
    try:
        create_all_tables()
    except ConfigurationError as exc:
        # Sequences cannot start without storage; health endpoints still answer
        logger.warning(f"Database unavailable at startup: {exc.message}")
    try:
        yield
    finally:
        logger.info("Stopping dailyloop service...")


app = FastAPI(title="dailyloop", lifespan=lifespan)

app.add_middleware(RequestIdMiddleware)

app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(HTTPException, http_error_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(sequences.router)
app.include_router(habits.router)
app.include_router(health.router)
