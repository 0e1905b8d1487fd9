"""
FastAPI application factory.

This module builds the HTTP surface of onceline. It is responsible for:
1.  **Middleware Setup**: CORS so a browser front end can call the API.
2.  **Exception Handling**: every error leaves as structured JSON; assistant
    failures carry the same apology text the chat thread shows.
3.  **Routing**: the chat proxy and a health probe.

Design Pattern
--------------
``create_app(assistant=...)`` is an application factory, so tests inject a
fake assistant and never reach the network.
"""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from onceline import __version__
from onceline.api.routers import chat
from onceline.core.errors import AssistantError, ValidationError
from onceline.core.settings import get_logger, load_settings
from onceline.llm.assistant import APOLOGY_MESSAGE, Assistant, AssistantClient

logger = get_logger(__name__)


def create_app(assistant: Assistant | None = None) -> FastAPI:
    """
    Construct and configure the onceline FastAPI application.

    Parameters
    ----------
    assistant:
        Assistant used by ``POST /api/chat``. Defaults to one built from settings.
    """
    app = FastAPI(
        title="Onceline API",
        description="Life-timeline assistant",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.assistant = assistant or AssistantClient.from_settings()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # -----------------------------------------------------------------------
    # Exception handlers
    # -----------------------------------------------------------------------
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s", request.url.path)
        return JSONResponse(
            status_code=500,
            content={"error": "Internal Server Error", "detail": str(exc), "path": request.url.path},
        )

    @app.exception_handler(ValueError)
    @app.exception_handler(ValidationError)
    async def bad_request_handler(request: Request, exc: Exception) -> JSONResponse:
        return JSONResponse(status_code=400, content={"error": "Bad Request", "detail": str(exc)})

    @app.exception_handler(AssistantError)
    async def assistant_error_handler(request: Request, exc: AssistantError) -> JSONResponse:
        logger.error("Chat API error: %s", exc)
        return JSONResponse(
            status_code=500,
            content={"error": "Failed to process chat", "message": APOLOGY_MESSAGE},
        )

    # -----------------------------------------------------------------------
    # Routes
    # -----------------------------------------------------------------------
    app.include_router(chat.router)

    @app.get("/health", tags=["System"])
    async def health_check() -> dict[str, str]:
        """Simple liveness probe."""
        return {
            "status": "ok",
            "environment": load_settings().environment,
            "version": __version__,
        }

    return app


__all__ = ["create_app"]
