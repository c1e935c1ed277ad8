from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from freight_billing.api.routes import router
from freight_billing.core.config import settings
from freight_billing.core.errors import FreightBillingError
from freight_billing.core.logging import configure_logging
from freight_billing.db.init_db import init_db
from freight_billing.services import BillingServices, build_services

logger = logging.getLogger(__name__)


def create_app(services: BillingServices | None = None) -> FastAPI:
    configure_logging(settings.log_level)
    app = FastAPI(title="Freight Billing", version="0.1.0")
    app.state.services = services or build_services(settings)
    app.include_router(router)

    @app.get("/")
    async def root():
        return {
            "message": "Welcome to the Freight Billing API",
            "docs": "/docs",
            "health": "/health"
        }

    @app.exception_handler(FreightBillingError)
    async def _billing_error(request: Request, exc: FreightBillingError) -> JSONResponse:
        if exc.http_status >= 500:
            logger.error("request_failed", extra={"path": request.url.path, "code": exc.code, "error": str(exc)})
        return JSONResponse(status_code=exc.http_status, content={"code": exc.code, "message": str(exc)})

    @app.on_event("startup")
    async def _startup() -> None:
        logger.info("startup", extra={"store_backend": app.state.services.settings.store_backend})
        if app.state.services.databases:
            await init_db(app.state.services.databases)
        # Fail fast when the configured default status is not in the catalog
        await app.state.services.registry.ensure_default_status(
            app.state.services.settings.default_invoice_status
        )

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        await app.state.services.close()

    return app


app = create_app()
