from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta

from freight_billing.charges.service import ChargesService
from freight_billing.core.config import Settings, settings as default_settings
from freight_billing.db.session import PRIMARY_STORE, SECONDARY_STORE, Database, dispose_databases, open_databases
from freight_billing.details.loader import ShipmentDetailLoader, ShipmentDetailService
from freight_billing.ingestion.diagnostics import ExtractionEngine, LoggingExtractionEngine
from freight_billing.ingestion.state_machine import IngestionStateMachine
from freight_billing.ingestion.uploads import UploadTracker
from freight_billing.invoice_status.registry import InvoiceStatusRegistry
from freight_billing.invoice_status.transitions import InvoiceStatusAuthority
from freight_billing.notifications import LoggingNotifier, Notifier
from freight_billing.stores.base import AuditTrail, ShipmentStore, StatusCatalogStore
from freight_billing.stores.chain import StoreChain


@dataclass
class BillingServices:
    """Everything the API layer needs, wired against one store backend."""

    settings: Settings
    chain: StoreChain
    shipments: ShipmentStore
    audit: AuditTrail
    registry: InvoiceStatusRegistry
    charges: ChargesService
    authority: InvoiceStatusAuthority
    uploads: UploadTracker
    ingestion: IngestionStateMachine
    details: ShipmentDetailService
    engine: ExtractionEngine
    databases: list[Database] = field(default_factory=list)

    @property
    def stuck_after(self) -> timedelta:
        return timedelta(minutes=self.settings.stuck_upload_minutes)

    async def close(self) -> None:
        self.ingestion.close()
        await dispose_databases(self.databases)


def wire_services(
    cfg: Settings,
    *,
    chain: StoreChain,
    shipments: ShipmentStore,
    audit: AuditTrail,
    catalog: StatusCatalogStore,
    catalog_fallback: StatusCatalogStore | None = None,
    notifier: Notifier | None = None,
    engine: ExtractionEngine | None = None,
    databases: list[Database] | None = None,
) -> BillingServices:
    notifier = notifier or LoggingNotifier()
    registry = InvoiceStatusRegistry(
        catalog,
        catalog_fallback,
        cache_ttl_seconds=cfg.status_cache_ttl_seconds,
    )
    loader = ShipmentDetailLoader(
        shipments,
        audit,
        registry,
        default_status=cfg.default_invoice_status,
        fallback_currency=cfg.default_currency,
    )
    return BillingServices(
        settings=cfg,
        chain=chain,
        shipments=shipments,
        audit=audit,
        registry=registry,
        charges=ChargesService(
            shipments,
            fetch_limit=cfg.charges_fetch_limit,
            default_status=cfg.default_invoice_status,
            fallback_currency=cfg.default_currency,
        ),
        authority=InvoiceStatusAuthority(
            shipments,
            registry,
            audit,
            notifier=notifier,
            default_status=cfg.default_invoice_status,
        ),
        uploads=UploadTracker(chain.primary),
        ingestion=IngestionStateMachine(
            chain,
            poll_interval=cfg.upload_poll_interval_seconds,
            stall_timeout=cfg.upload_stall_timeout_seconds,
            notifier=notifier,
        ),
        details=ShipmentDetailService(loader),
        engine=engine or LoggingExtractionEngine(),
        databases=databases or [],
    )


def build_services(cfg: Settings | None = None) -> BillingServices:
    """Return services for the configured backend.

    STORE_BACKEND options:
        sql:    SQLAlchemy stores on DATABASE_URL (admin) and, when set,
                SECONDARY_DATABASE_URL (regular)
        memory: in-process stores (dev/test, no database required)
    """
    cfg = cfg or default_settings
    backend = cfg.store_backend.lower().strip()

    if backend == "memory":
        from freight_billing.stores.memory import (
            MemoryAuditTrail,
            MemoryRecordStore,
            MemoryShipmentStore,
            MemoryStatusCatalogStore,
        )
        return wire_services(
            cfg,
            chain=StoreChain([MemoryRecordStore(PRIMARY_STORE), MemoryRecordStore(SECONDARY_STORE)]),
            shipments=MemoryShipmentStore(),
            audit=MemoryAuditTrail(),
            catalog=MemoryStatusCatalogStore(),
        )

    if backend == "sql":
        from freight_billing.db.repositories import (
            SqlAuditTrail,
            SqlRecordStore,
            SqlShipmentStore,
            SqlStatusCatalogStore,
        )
        databases = open_databases(cfg)
        primary = databases[0]
        secondary = databases[1] if len(databases) > 1 else None
        return wire_services(
            cfg,
            chain=StoreChain([SqlRecordStore(db.name, db.session_factory) for db in databases]),
            shipments=SqlShipmentStore(primary.name, primary.session_factory),
            audit=SqlAuditTrail(primary.name, primary.session_factory),
            catalog=SqlStatusCatalogStore(primary.name, primary.session_factory),
            catalog_fallback=(
                SqlStatusCatalogStore(secondary.name, secondary.session_factory) if secondary else None
            ),
            databases=databases,
        )

    raise ValueError(f"Unknown STORE_BACKEND={cfg.store_backend!r}")
