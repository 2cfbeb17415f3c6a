"""FastAPI application factory."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from ..db import ScanDatabase
from ..extractors.browser_pool import BrowserPool
from ..notifier import Notifier
from ..offer_sync import OfferSyncOrchestrator
from ..orchestrator import ScanOrchestrator
from ..storage import ProductStore
from .routes import router

logger = logging.getLogger(__name__)


def create_app(
    store: ProductStore | None = None,
    db: ScanDatabase | None = None,
    notifier: Notifier | None = None,
    extractors: dict | None = None,
    auto_resume: bool = True,
    shutdown_browser: bool = True,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    # Initialize storage early so lifespan can use it
    product_store = store or ProductStore()
    database = db or ScanDatabase()
    orchestrator = ScanOrchestrator(product_store, database, notifier, extractors=extractors)
    offer_sync = OfferSyncOrchestrator(
        product_store,
        orchestrator.guard,
        db=database,
        extractors=orchestrator.extractors,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Resume continuous scanning on startup, stop scans and the browser on shutdown."""
        if auto_resume:
            orchestrator.resume()

        yield

        await orchestrator.shutdown()
        if shutdown_browser:
            await BrowserPool.shutdown()

    app = FastAPI(
        title="Pricewatch",
        description="Track product prices across shopping sites and alert below target",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state.store = product_store
    app.state.db = database
    app.state.orchestrator = orchestrator
    app.state.offer_sync = offer_sync

    app.include_router(router)

    return app
