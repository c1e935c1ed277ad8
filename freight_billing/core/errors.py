"""Typed exceptions for the billing core.

Every error carries a machine-readable ``code`` and the HTTP status the API
layer answers with. Callers catch by type and read the structured
attributes (ids, store names) instead of parsing messages.

    FreightBillingError
    +-- NotFoundError
    |   +-- ShipmentNotFoundError
    |   +-- UploadNotFoundError
    +-- DataIntegrityError
    |   +-- ResultMissingError
    +-- StoreUnavailableError
    +-- ValidationError
    |   +-- MissingCarrierError
    |   +-- MissingActorError
    |   +-- UnknownInvoiceStatusError
    +-- StatusWriteError
    |   +-- ConcurrentStatusUpdateError
    +-- IngestionFailedError
    +-- ConfigurationError
"""
from __future__ import annotations


class FreightBillingError(Exception):
    code: str = "FREIGHT_BILLING_ERROR"
    http_status: int = 500


# Not found


class NotFoundError(FreightBillingError):
    code: str = "NOT_FOUND"
    http_status: int = 404


class ShipmentNotFoundError(NotFoundError):
    code: str = "SHIPMENT_NOT_FOUND"

    def __init__(self, shipment_key: str) -> None:
        self.shipment_key = shipment_key
        super().__init__(f"Shipment not found: {shipment_key}")


class UploadNotFoundError(NotFoundError):
    code: str = "UPLOAD_NOT_FOUND"

    def __init__(self, upload_id: str, stores: tuple[str, ...] = ()) -> None:
        self.upload_id = upload_id
        self.stores = stores
        where = f" (searched: {', '.join(stores)})" if stores else ""
        super().__init__(f"Upload not found in any store. ID: {upload_id}{where}")


# Data integrity


class DataIntegrityError(FreightBillingError):
    code: str = "DATA_INTEGRITY"
    http_status: int = 500


class ResultMissingError(DataIntegrityError):
    """A completed upload references a result record that no store holds."""

    code: str = "RESULT_MISSING"

    def __init__(self, upload_id: str, result_id: str | None, stores: tuple[str, ...] = ()) -> None:
        self.upload_id = upload_id
        self.result_id = result_id
        self.stores = stores
        if result_id is None:
            message = f"Upload {upload_id} is completed but carries no result id"
        else:
            message = f"Results document not found: {result_id} (upload {upload_id})"
        super().__init__(message)


# Transient I/O


class StoreUnavailableError(FreightBillingError):
    code: str = "STORE_UNAVAILABLE"
    http_status: int = 503

    def __init__(self, store: str, detail: str = "") -> None:
        self.store = store
        self.detail = detail
        suffix = f": {detail}" if detail else ""
        super().__init__(f"Store {store!r} is unavailable{suffix}")


# Validation


class ValidationError(FreightBillingError):
    code: str = "VALIDATION_ERROR"
    http_status: int = 422


class MissingCarrierError(ValidationError):
    code: str = "MISSING_CARRIER"

    def __init__(self, file_name: str | None = None) -> None:
        self.file_name = file_name
        super().__init__("A carrier must be selected before uploading a file")


class MissingActorError(ValidationError):
    code: str = "MISSING_ACTOR"

    def __init__(self) -> None:
        super().__init__("An actor is required to change an invoice status")


class UnknownInvoiceStatusError(ValidationError):
    code: str = "UNKNOWN_INVOICE_STATUS"

    def __init__(self, status_code: str) -> None:
        self.status_code = status_code
        super().__init__(f"Invoice status {status_code!r} does not exist or is disabled")


# Writes


class StatusWriteError(FreightBillingError):
    code: str = "STATUS_WRITE_FAILED"
    http_status: int = 500

    def __init__(self, shipment_id: str, detail: str = "") -> None:
        self.shipment_id = shipment_id
        self.detail = detail
        suffix = f": {detail}" if detail else ""
        super().__init__(f"Failed to update invoice status for shipment {shipment_id}{suffix}")


class ConcurrentStatusUpdateError(StatusWriteError):
    code: str = "STATUS_WRITE_CONFLICT"
    http_status: int = 409

    def __init__(self, shipment_id: str) -> None:
        super().__init__(shipment_id, "the shipment was modified by another update")


# Ingestion


class IngestionFailedError(FreightBillingError):
    code: str = "INGESTION_FAILED"
    http_status: int = 422

    def __init__(self, upload_id: str, reason: str | None = None) -> None:
        self.upload_id = upload_id
        self.reason = reason or "Processing failed"
        super().__init__(self.reason)


class ConfigurationError(FreightBillingError):
    code: str = "CONFIGURATION_ERROR"
    http_status: int = 500
