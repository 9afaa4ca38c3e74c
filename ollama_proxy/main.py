"""
Ollama Proxy - Main Entry Point

Ollama- and OpenAI-compatible API server that forwards requests to
OpenAI-compatible, Gemini or native Ollama upstreams. Model aliases are
discovered once at startup from each configured backend.

Usage:
    python -m ollama_proxy.main

Environment Variables:
    PROXY_HOST       - Server host (default: 0.0.0.0)
    PORT             - Server port (default: 11434)
    OPENAI_API_KEY   - OpenAI bearer token
    OPENAI_BASE_URL  - OpenAI-compatible API URL (default: https://api.openai.com/v1)
    GEMINI_API_KEY   - Gemini API key
    GEMINI_BASE_URL  - Gemini API URL
    OLLAMA_URL       - Native Ollama URL (backend disabled when unset)
    REQUEST_TIMEOUT  - Upstream timeout in seconds (default: 300)
    DEBUG            - Enable debug logging
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Dict, Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .backend_client import BackendClient
from .config import Config, config
from .errors import ProxyError
from .gemini_client import GeminiClient
from .models import Backend
from .ollama_api import router as ollama_router
from .ollama_client import OllamaClient
from .openai_api import router as openai_router
from .openai_client import OpenAIClient
from .registry import ModelRegistry
from .router import Router

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if config.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)


def build_adapters(cfg: Config) -> Dict[Backend, BackendClient]:
    """Adapters for every configured upstream."""
    adapters: Dict[Backend, BackendClient] = {
        Backend.OPENAI: OpenAIClient(cfg.openai_api_key, cfg.openai_base_url, timeout=cfg.request_timeout),
        Backend.GEMINI: GeminiClient(cfg.gemini_api_key, cfg.gemini_base_url, timeout=cfg.request_timeout),
    }
    if cfg.ollama_enabled:
        adapters[Backend.OLLAMA] = OllamaClient(cfg.ollama_url, timeout=cfg.request_timeout)
    return adapters


def create_app(adapters: Optional[Dict[Backend, BackendClient]] = None) -> FastAPI:
    """
    Build the FastAPI app.

    On startup the lifespan discovers model aliases once and installs the
    finished router on ``app.state``; it is not modified afterwards.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        logger.info("=" * 60)
        logger.info("Ollama Proxy Starting")
        logger.info("=" * 60)

        backends = adapters if adapters is not None else build_adapters(config)
        logger.info(f"Configured backends: {', '.join(b.value for b in backends)}")

        registry = await ModelRegistry.discover(backends)
        for entry in registry.entries():
            logger.info(f"  - {entry.alias} -> {entry.backend.value}:{entry.upstream_model}")

        app.state.router = Router(registry, backends)

        logger.info("-" * 60)
        logger.info(f"Server ready at http://{config.host}:{config.port}")
        logger.info(f"Ollama endpoints: http://{config.host}:{config.port}/api/chat, /api/generate")
        logger.info(f"OpenAI endpoint: http://{config.host}:{config.port}/v1/chat/completions")
        logger.info("=" * 60)

        yield

        # Shutdown
        logger.info("Shutting down...")
        for adapter in backends.values():
            await adapter.close()
        logger.info("Shutdown complete")

    app = FastAPI(
        title="Ollama Proxy",
        description=(
            "Ollama- and OpenAI-compatible API that routes model aliases to "
            "OpenAI-compatible, Gemini or native Ollama upstreams."
        ),
        version="0.1.0",
        lifespan=lifespan,
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Debug-log every request and the status it was answered with."""
        logger.debug(f"Request received: {request.method} {request.url.path}")
        response = await call_next(request)
        logger.debug(f"Response sent: {request.method} {request.url.path} -> {response.status_code}")
        return response

    @app.exception_handler(ProxyError)
    async def proxy_error_handler(request: Request, exc: ProxyError):
        """Map proxy errors to their status and a JSON error body."""
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        else:
            logger.warning(f"{request.method} {request.url.path} rejected: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_content())

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions without leaking details."""
        logger.error(f"Unexpected error: {exc}", exc_info=True)
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    # Mount routers
    app.include_router(ollama_router)
    app.include_router(openai_router)

    @app.get("/health")
    async def health(request: Request):
        """Health check endpoint."""
        router: Router = request.app.state.router
        return {
            "status": "healthy",
            "backends": [b.value for b in router.adapters],
            "aliases": len(router.registry),
        }

    @app.get("/")
    async def root():
        """Root endpoint with basic info."""
        return {
            "name": "Ollama Proxy",
            "version": "0.1.0",
            "endpoints": {
                "generate": "/api/generate",
                "chat": "/api/chat",
                "tags": "/api/tags",
                "openai_chat": "/v1/chat/completions",
                "openai_completions": "/v1/completions",
                "openai_models": "/v1/models",
                "health": "/health",
            },
        }

    return app


app = create_app()


def main():
    """Run the proxy server."""
    uvicorn.run(
        "ollama_proxy.main:app",
        host=config.host,
        port=config.port,
        reload=False,
        log_level="debug" if config.debug else "info",
    )


if __name__ == "__main__":
    main()
