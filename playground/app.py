"""
FastData Sandbox - in-memory FastData API for local development.

Serves the same HTTP surface as a FastData API server from in-memory
stores, and accepts writes through /v1/sandbox/* (or in-process through
SandboxSubmitter) so SDK code can be exercised without a chain.

Usage:
    python -m playground
    uvicorn playground.app:app --port 3001
"""

import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from .config import Settings
from .routes import router
from .store import FastfsStore, KvStore
from .submitter import SandboxSubmitter

logger = logging.getLogger(__name__)


def create_app(
    store: Optional[KvStore] = None,
    files: Optional[FastfsStore] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    """Create the sandbox FastAPI app.

    Args:
        store: KV store to serve (a fresh one if omitted)
        files: FastFS store to serve (a fresh one if omitted)
        settings: Sandbox settings (loaded from environment if omitted)
    """
    settings = settings or Settings()

    app = FastAPI(
        title="FastData Sandbox",
        description=(
            "In-memory FastData API. Reads mirror /v1/kv/* and /v1/social/*; "
            "writes go through /v1/sandbox/*."
        ),
        version="0.1.0",
    )

    # State is attached here rather than in a lifespan so in-process
    # transports see it without running startup events.
    app.state.settings = settings
    app.state.kv = store if store is not None else KvStore()
    app.state.files = files if files is not None else FastfsStore()
    app.state.submitter = SandboxSubmitter(
        app.state.kv, app.state.files, signer_id=settings.default_signer_id
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router)

    @app.get("/health")
    async def health(request: Request):
        kv: KvStore = request.app.state.kv
        return {"status": "ok", "service": "fastdata-sandbox", "block_height": kv.block_height}

    return app


app = create_app()
