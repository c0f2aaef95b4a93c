"""
User Account API — application entry point.
"""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.errors import register_exception_handlers
from api.middleware import register_middleware
from api.routes import router as collections_router
from auth.jwt import TokenService
from auth.routes import router as auth_router
from config.settings import Settings, config
from database.store import UserStore

logging.basicConfig(
    level=logging.DEBUG if config.debug else logging.INFO,
    format="%(asctime)s  %(levelname)-8s  %(name)s — %(message)s",
    stream=sys.stdout,
)
for _noisy in ("sqlalchemy.engine", "aiosqlite", "asyncio"):
    logging.getLogger(_noisy).setLevel(logging.WARNING)
logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[UserStore] = None,
) -> FastAPI:
    settings = settings or config
    store = store or UserStore(
        settings.database_url,
        create_schema=settings.database_create_schema,
        echo=settings.database_echo,
        bcrypt_rounds=settings.bcrypt_rounds,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if not settings.jwt_secret:
            logger.error("unable to start the server: JWT_SECRET is not set")
            raise RuntimeError("JWT_SECRET is not set")

        app.state.tokens = TokenService(
            settings.jwt_secret,
            settings.jwt_expiry_seconds,
            scheme=settings.auth_scheme,
        )
        try:
            await store.connect()
        except Exception as exc:
            logger.error("unable to start the server: %r", exc.__cause__ or exc)
            raise

        logger.info(
            "API listening on: %s:%s (auth strategy: %s)",
            settings.host,
            settings.port,
            settings.auth_strategy,
        )
        try:
            yield
        finally:
            await store.disconnect()

    app = FastAPI(
        title="User Account API",
        version="1.0.0",
        description="Register, login and per-user favourites/history.",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.store = store

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_middleware(app)
    register_exception_handlers(app)

    # Routes
    app.include_router(auth_router, prefix="/api/user")
    app.include_router(collections_router, prefix="/api/user")

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=config.host,
        port=config.port,
        reload=config.debug,
        log_level="debug" if config.debug else "info",
    )
