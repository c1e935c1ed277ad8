"""HTTP surface over in-memory services."""
from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from freight_billing.core.config import Settings
from freight_billing.ingestion.models import ProcessingStatus, ResultRecord, UploadRecord
from freight_billing.main import create_app
from freight_billing.rates.representations import SingleRate
from freight_billing.services import BillingServices, wire_services
from freight_billing.shipments.models import Shipment
from freight_billing.stores.chain import StoreChain
from freight_billing.stores.memory import (
    MemoryAuditTrail,
    MemoryRecordStore,
    MemoryShipmentStore,
    MemoryStatusCatalogStore,
)


@pytest.fixture
def services() -> BillingServices:
    shipments = MemoryShipmentStore([
        Shipment(
            storage_id="s-1",
            shipment_number="IC-1",
            company_id="ACME",
            customer_name="Acme Corp",
            status="delivered",
            rates=SingleRate(Decimal("100.00"), "CAD"),
            created_at=datetime(2024, 1, 2, tzinfo=timezone.utc),
        ),
        Shipment(
            storage_id="s-2",
            shipment_number="IC-2",
            company_id="GLOBEX",
            customer_name="Globex",
            status="delivered",
            rates=SingleRate(Decimal("40.00"), "USD"),
            created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
        ),
    ])
    return wire_services(
        Settings(store_backend="memory"),
        chain=StoreChain([MemoryRecordStore("admin"), MemoryRecordStore("regular")]),
        shipments=shipments,
        audit=MemoryAuditTrail(),
        catalog=MemoryStatusCatalogStore(),
    )


@pytest.fixture
def client(services: BillingServices):
    with TestClient(create_app(services)) as test_client:
        yield test_client


def test_health(client: TestClient) -> None:
    assert client.get("/health").json() == {"status": "ok"}


def test_list_charges_and_filters(client: TestClient) -> None:
    body = client.get("/charges").json()
    assert [c["shipment_id"] for c in body] == ["IC-1", "IC-2"]

    body = client.get("/charges", params={"company_id": "GLOBEX"}).json()
    assert [c["shipment_id"] for c in body] == ["IC-2"]


def test_metrics_are_per_currency(client: TestClient) -> None:
    body = client.get("/charges/metrics").json()
    assert body["total_shipments"] == {"CAD": 1, "USD": 1}
    assert Decimal(body["total_revenue"]["USD"]) == Decimal("40.00")


def test_invoice_statuses_seeded(client: TestClient) -> None:
    codes = [s["status_code"] for s in client.get("/invoice-statuses").json()]
    assert codes[0] == "uninvoiced"
    assert len(codes) == 7


def test_change_invoice_status_and_read_details(client: TestClient) -> None:
    response = client.post(
        "/shipments/IC-1/invoice-status",
        json={"status_code": "paid", "actor": "ops@example.com"},
    )
    assert response.status_code == 200
    assert response.json()["shipment_id"] == "s-1"
    assert response.json()["changed"] is True

    detail = client.get("/charges/IC-1/details").json()
    assert detail["invoice_status_label"] == "Paid"
    assert detail["events"][0]["status_change"]["to"] == "paid"


def test_errors_map_to_codes(client: TestClient) -> None:
    response = client.post(
        "/shipments/IC-404/invoice-status",
        json={"status_code": "paid", "actor": "ops@example.com"},
    )
    assert response.status_code == 404
    assert response.json()["code"] == "SHIPMENT_NOT_FOUND"

    response = client.post(
        "/shipments/IC-1/invoice-status",
        json={"status_code": "nope", "actor": "ops@example.com"},
    )
    assert response.status_code == 422
    assert response.json()["code"] == "UNKNOWN_INVOICE_STATUS"


def test_upload_requires_carrier(client: TestClient) -> None:
    response = client.post("/edi/uploads", json={"file_name": "a.csv", "file_size": 1})
    assert response.status_code == 422
    assert response.json()["code"] == "MISSING_CARRIER"


def test_upload_roundtrip_with_result(client: TestClient, services: BillingServices) -> None:
    created = client.post(
        "/edi/uploads",
        json={"file_name": "ups.csv", "file_size": 10, "carrier_id": "UPS"},
    ).json()
    assert created["processing_status"] == "queued"

    admin = services.chain.primary
    admin.put_result(ResultRecord(id="r-1", carrier="UPS"))
    admin.set_status(created["id"], ProcessingStatus.COMPLETED, result_id="r-1")

    body = client.get(f"/edi/uploads/{created['id']}").json()
    assert body["upload"]["processing_status"] == "completed"
    assert body["result"]["id"] == "r-1"
    assert body["result_store"] == "admin"


def test_unknown_upload_is_404(client: TestClient) -> None:
    response = client.get("/edi/uploads/missing")
    assert response.status_code == 404
    assert response.json()["code"] == "UPLOAD_NOT_FOUND"


def test_queue_diagnosis_and_repair(client: TestClient, services: BillingServices) -> None:
    services.chain.stores[1].put_upload(UploadRecord(
        id="old",
        file_name="old.csv",
        file_size=1,
        carrier_id="UPS",
        processing_status=ProcessingStatus.QUEUED,
        uploaded_at=datetime(2020, 1, 1, tzinfo=timezone.utc),
        updated_at=datetime(2020, 1, 1, tzinfo=timezone.utc),
    ))

    diagnosis = client.get("/edi/queue/diagnosis").json()
    assert [s["upload_id"] for s in diagnosis["stuck"]] == ["old"]
    assert diagnosis["healthy"] is False

    report = client.post("/edi/queue/repair").json()
    assert report["requeued"] == ["old"]
