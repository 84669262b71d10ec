"""FastAPI application for the review server."""

from __future__ import annotations

from contextlib import asynccontextmanager

import structlog
import uvicorn
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError

from diffscope.api import api_router
from diffscope.api.state import ReviewOptions, ReviewState
from diffscope.errors import DiffscopeError
from diffscope.log_config import configure_logging
from diffscope.middleware import (
    diffscope_exception_handler,
    http_exception_handler,
    request_logging_middleware,
    validation_exception_handler,
)
from diffscope.revisions import determine_watch_mode
from diffscope.settings import settings

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    review: ReviewState = app.state.review
    options = review.options
    if options.stdin_diff is None and options.watch and settings.watch_enabled():
        mode = determine_watch_mode(options.target, options.base)
        await review.watcher.start(mode, options.repo_path, on_invalidate=review.invalidate)
    else:
        logger.info("File watching disabled")
    logger.info("Review UI available", url=f"http://{settings.host()}:{settings.port()}/")
    try:
        yield
    finally:
        await review.watcher.stop()


def create_app(options: ReviewOptions, review: ReviewState | None = None) -> FastAPI:
    """Build the application serving one review session."""
    app = FastAPI(title="diffscope", lifespan=lifespan)
    app.state.review = review or ReviewState(options)

    app.middleware("http")(request_logging_middleware)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(DiffscopeError, diffscope_exception_handler)

    app.include_router(api_router)
    return app


def run(options: ReviewOptions) -> None:
    """Entry point for the ``diffscope`` command once arguments are parsed."""
    configure_logging()
    uvicorn.run(
        create_app(options),
        host=settings.host(),
        port=settings.port(),
        reload=False,
        log_config=None,
        access_log=False,
    )
