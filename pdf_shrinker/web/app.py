"""FastAPI application factory."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from pdf_shrinker import __version__
from pdf_shrinker.exceptions import ShrinkerError
from pdf_shrinker.processor import RewriterFactory
from pdf_shrinker.settings import Settings
from pdf_shrinker.storage import StorageConfig, TransientStore
from pdf_shrinker.web.delivery import DeliveryResponder

GENERIC_ERROR = "Error compressing PDF. Please try again."

EXPOSED_HEADERS = [
    "Content-Disposition",
    "X-Original-Size",
    "X-Compressed-Size",
    "X-Size-Reduction",
    "X-Request-ID",
]


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    log = logging.getLogger("pdf_shrinker.web")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        store = TransientStore(
            StorageConfig(incoming_dir=settings.incoming_dir, outgoing_dir=settings.outgoing_dir)
        )
        store.purge()
        app.state.settings = settings
        app.state.store = store
        app.state.rewriter = RewriterFactory.create(settings)
        app.state.responder = DeliveryResponder(store, chunk_size=settings.chunk_size)
        log.info(
            "Storage ready: incoming=%s outgoing=%s engine=%s",
            settings.incoming_dir,
            settings.outgoing_dir,
            app.state.rewriter.name,
        )
        yield
        store.purge()

    app = FastAPI(title="PDF Shrinker", version=__version__, lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=EXPOSED_HEADERS,
    )

    # Import routers inside create_app() to avoid circular imports at module load time
    from pdf_shrinker.web.routes import router as compress_router

    app.include_router(compress_router)

    @app.exception_handler(ShrinkerError)
    def _shrinker_error(request: Request, exc: ShrinkerError) -> PlainTextResponse:
        if exc.status_code >= 500:
            return PlainTextResponse(GENERIC_ERROR, status_code=exc.status_code)
        return PlainTextResponse(exc.message, status_code=exc.status_code)

    @app.exception_handler(Exception)
    def _internal_error(request: Request, exc: Exception) -> PlainTextResponse:
        return PlainTextResponse(GENERIC_ERROR, status_code=500)

    @app.get("/health", tags=["ops"])
    def health() -> dict:
        return {"status": "ok"}

    return app
