"""
Main FastAPI application for the chat backend.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .routes import chat, conversations
from .services import ChatService, build_chat_service
from .middleware.metrics import MetricsMiddleware, metrics_endpoint
from config.settings import get_settings, Settings
from llm.errors import ChatServiceError, PersistenceError, ValidationError

logger = logging.getLogger(__name__)


def error_response(message: str, status_code: int, headers: Optional[dict] = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message}, headers=headers)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Chat backend starting up...")

    owns_service = app.state.chat_service is None
    if owns_service:
        app.state.chat_service = await build_chat_service(app.state.settings)

    logger.info("Chat backend ready")
    yield
    logger.info("Chat backend shutting down...")

    if owns_service:
        await app.state.chat_service.close()
        app.state.chat_service = None


def register_exception_handlers(app: FastAPI):
    """Every error leaves the API as {"error": <message>}."""

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError):
        return error_response(str(exc), 400)

    @app.exception_handler(RequestValidationError)
    async def request_format_handler(request: Request, exc: RequestValidationError):
        logger.debug(f"Rejected request body on {request.url.path}: {exc.errors()}")
        return error_response("Invalid request format", 400)

    @app.exception_handler(PersistenceError)
    async def persistence_error_handler(request: Request, exc: PersistenceError):
        logger.error(f"Persistence failure on {request.url.path}: {exc}")
        return error_response(str(exc), 500)

    @app.exception_handler(ChatServiceError)
    async def service_error_handler(request: Request, exc: ChatServiceError):
        logger.error(f"Chat service failure on {request.url.path}: {exc}")
        return error_response(str(exc) or "Internal server error", 500)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return error_response(str(exc.detail), exc.status_code, getattr(exc, "headers", None))


def create_app(service: Optional[ChatService] = None, settings: Optional[Settings] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        service: Pre-built chat service; built from settings at startup when omitted
        settings: Settings override
    """
    settings = settings or get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="[%(asctime)s] %(levelname)s %(name)s - %(message)s",
    )

    app = FastAPI(
        title=settings.api_title,
        description="Conversational chat backend with streamed replies and persisted transcripts.",
        version=settings.api_version,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
        debug=settings.debug,
    )
    app.state.settings = settings
    app.state.chat_service = service

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Prometheus metrics middleware
    app.add_middleware(MetricsMiddleware)

    register_exception_handlers(app)

    app.include_router(chat.router, prefix="/api", tags=["Chat"])
    app.include_router(conversations.router, prefix="/api", tags=["Conversations"])

    app.get("/metrics", tags=["Monitoring"])(metrics_endpoint)

    @app.get("/health")
    async def health():
        chat_service = app.state.chat_service
        if chat_service is None:
            return {"status": "starting"}
        return {"status": "healthy", **chat_service.health()}

    return app


# Create app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
