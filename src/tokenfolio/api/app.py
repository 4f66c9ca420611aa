"""FastAPI application factory."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from tokenfolio.api.deps import AppState, api_key_middleware
from tokenfolio.api.routes import router
from tokenfolio.api.schemas import ErrorResponse
from tokenfolio.core.config import TokenfolioConfig, load_config
from tokenfolio.core.exceptions import (
    ConfigError,
    ProviderError,
    TokenfolioError,
    TransientProviderError,
)
from tokenfolio.engine import PricingEngine


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup/shutdown lifecycle."""
    config = app.state._pending_config or load_config()
    engine = app.state._pending_engine or PricingEngine.from_config(config)

    app.state.app_state = AppState(config=config, engine=engine)

    async with engine:
        yield


def create_app(
    config: TokenfolioConfig | None = None, engine: PricingEngine | None = None
) -> FastAPI:
    """Create and configure the FastAPI application."""
    import tokenfolio

    app = FastAPI(
        title="Tokenfolio API",
        description="On-chain asset pricing, FX conversion and profit/loss",
        version=tokenfolio.__version__,
        lifespan=lifespan,
    )

    # Stash config so lifespan can retrieve it
    app.state._pending_config = config
    app.state._pending_engine = engine

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Optional API key middleware
    if config and config.api.api_key:
        app.middleware("http")(api_key_middleware)

    app.include_router(router, prefix="/api")

    # Exception handlers
    @app.exception_handler(TokenfolioError)
    async def tokenfolio_exception_handler(request: Request, exc: TokenfolioError):
        if isinstance(exc, ConfigError):
            status = 400
        elif isinstance(exc, TransientProviderError):
            status = 503
        elif isinstance(exc, ProviderError):
            status = 502
        else:
            status = 500
        return JSONResponse(
            status_code=status,
            content=ErrorResponse(error=type(exc).__name__, detail=str(exc)).model_dump(),
        )

    return app
