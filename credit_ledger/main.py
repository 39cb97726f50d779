"""
Main application for the Credit Ledger Worker
"""

from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from credit_ledger.core.config.settings import Settings, settings as default_settings
from credit_ledger.core.database.client import DatabaseClient
from credit_ledger.core.exceptions import CreditLedgerException
from credit_ledger.core.logging import get_logger, logging_config_from_settings, setup_logging
from credit_ledger.domains.billing.api import ledger_exception_handler, router as credits_router
from credit_ledger.domains.billing.container import LedgerServices, build_ledger_services
from credit_ledger.shared.helpers import now_utc

logger = get_logger(__name__)


def create_app(
    app_settings: Optional[Settings] = None,
    services: Optional[LedgerServices] = None,
) -> FastAPI:
    """
    Build the FastAPI app.

    Without `services` the lifespan opens a DatabaseClient, creates the
    schema and closes the client on shutdown. Passing `services` uses that
    graph as-is and leaves its lifecycle to the caller.
    """
    app_settings = app_settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager"""
        if services is not None:
            yield
            return

        setup_logging(logging_config_from_settings(app_settings.logging))
        logger.info("Starting service initialization", environment=app_settings.ENVIRONMENT)

        db = DatabaseClient(app_settings.database, app_settings.billing)
        await db.connect()
        await db.create_all()
        app.state.services = build_ledger_services(db, app_settings)
        logger.info("Credit ledger ready")

        try:
            yield
        finally:
            await db.close()
            app.state.services = None
            logger.info("Credit ledger stopped")

    app = FastAPI(
        title=app_settings.PROJECT_NAME,
        description="Credit purchases, usage metering and billing for Shopify shops",
        version=app_settings.VERSION,
        lifespan=lifespan,
    )
    app.state.services = services

    app.include_router(credits_router)
    app.add_exception_handler(CreditLedgerException, ledger_exception_handler)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        ledger = app.state.services
        database_ok = await ledger.db.health_check() if ledger else False
        return JSONResponse(
            status_code=200 if database_ok else 503,
            content={
                "status": "healthy" if database_ok else "unhealthy",
                "timestamp": now_utc().isoformat(),
                "version": app_settings.VERSION,
                "database": database_ok,
            },
        )

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "credit_ledger.main:app",
        host="0.0.0.0",
        port=default_settings.PORT,
        reload=default_settings.DEBUG,
    )
