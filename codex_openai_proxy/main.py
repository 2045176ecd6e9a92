"""Main FastAPI application for the Codex OpenAI Proxy."""

import argparse
import os
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from codex_openai_proxy import __version__
from codex_openai_proxy.api import chat_router, models_router
from codex_openai_proxy.core.auth import CodexCredentials, load_credentials
from codex_openai_proxy.core.codex_client import CodexClient
from codex_openai_proxy.core.config import settings
from codex_openai_proxy.core.exceptions import ProxyError
from codex_openai_proxy.core.model_router import ModelRouter
from codex_openai_proxy.core.request_converter import RequestConverter
from codex_openai_proxy.core.translator import Translator
from codex_openai_proxy.utils.logger import get_logger

logger = get_logger(__name__)

SERVICE_NAME = "codex-openai-proxy"


def build_translator(
    credentials: CodexCredentials,
    model_router: ModelRouter,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Translator:
    """Wire router, converter and backend client from the global settings."""
    client = CodexClient(
        credentials,
        url=settings.responses_url,
        timeout=settings.REQUEST_TIMEOUT,
        user_agent=settings.CODEX_USER_AGENT,
        transport=transport,
    )
    return Translator(
        model_router,
        RequestConverter(settings.DEFAULT_INSTRUCTIONS),
        client,
        queue_size=settings.STREAM_QUEUE_SIZE,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle."""
    # Startup
    logger.info(f"Starting Codex OpenAI Proxy v{__version__}")
    logger.info(f"Server running on {settings.HOST}:{settings.PORT}")
    logger.info(f"Allowed models: {', '.join(app.state.model_router.allowed_models)}")

    if app.state.translator is None:
        # Refuse to start without usable credentials
        credentials = load_credentials(settings.CODEX_AUTH_PATH)
        app.state.translator = build_translator(credentials, app.state.model_router)

    yield

    # Shutdown
    logger.info("Shutting down Codex OpenAI Proxy")


def create_app(translator: Optional[Translator] = None) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        translator: Pre-built translator; when omitted one is built at
            startup from the credentials file in CODEX_AUTH_PATH.
    """
    app = FastAPI(
        title="Codex OpenAI Proxy",
        description="OpenAI Chat Completions API for the ChatGPT Codex backend",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.model_router = translator.router if translator else ModelRouter(settings.get_allowed_models())
    app.state.translator = translator

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ALLOW_ORIGINS,
        allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
        allow_methods=settings.CORS_ALLOW_METHODS,
        allow_headers=settings.CORS_ALLOW_HEADERS,
    )

    # Clients configured with or without the /v1 prefix both work
    app.include_router(chat_router, prefix="/v1", tags=["Chat"])
    app.include_router(models_router, prefix="/v1", tags=["Models"])
    app.include_router(chat_router, include_in_schema=False)
    app.include_router(models_router, include_in_schema=False)

    @app.get("/")
    async def root() -> Dict[str, Any]:
        """Root endpoint."""
        return {
            "name": "Codex OpenAI Proxy",
            "version": __version__,
            "description": "OpenAI-compatible API for the ChatGPT Codex backend",
            "documentation": "/docs",
        }

    @app.get("/health")
    async def health_check() -> Dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok", "service": SERVICE_NAME, "version": __version__}

    @app.exception_handler(ProxyError)
    async def proxy_error_handler(request: Request, exc: ProxyError) -> JSONResponse:
        logger.warning(f"{request.method} {request.url.path} -> {exc.status_code} {exc.code}: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        logger.warning(f"Invalid request body for {request.url.path}: {exc.errors()}")
        return JSONResponse(
            status_code=400,
            content={
                "error": {
                    "message": f"Invalid request body: {exc.errors()}",
                    "type": "invalid_request_error",
                    "param": "body",
                    "code": "invalid_request",
                }
            },
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Global exception handler."""
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "error": {
                    "message": "An internal server error occurred",
                    "type": "internal_server_error",
                    "code": "internal_error",
                }
            },
        )

    return app


app = create_app()


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog=SERVICE_NAME, description="Codex OpenAI Proxy")
    parser.add_argument("--host", default=None, help="Interface to bind (default: HOST setting)")
    parser.add_argument("-p", "--port", type=int, default=None, help="Port to listen on (default: PORT setting)")
    parser.add_argument("--auth-path", default=None, help="Path to Codex auth.json (default: CODEX_AUTH_PATH setting)")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None):
    """Run the application using uvicorn."""
    import uvicorn

    args = parse_args(argv)
    overrides = {"HOST": args.host, "PORT": args.port, "CODEX_AUTH_PATH": args.auth_path}
    for name, value in overrides.items():
        if value is not None:
            # Environment too, so a reloader subprocess sees the same values
            os.environ[name] = str(value)
            setattr(settings, name, value)

    uvicorn.run(
        "codex_openai_proxy.main:app",
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower(),
        reload=settings.DEBUG,
    )


if __name__ == "__main__":
    main()
