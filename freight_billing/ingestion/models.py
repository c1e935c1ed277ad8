from __future__ import annotations

import enum
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_EVEN, Decimal, InvalidOperation
from typing import Any


class ProcessingStatus(str, enum.Enum):
    """Persisted ``processingStatus`` values. The strings are part of the schema."""

    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ProcessingStatus.COMPLETED, ProcessingStatus.FAILED)


class RecordType(str, enum.Enum):
    SHIPMENT = "shipment"
    CHARGE = "charge"


@dataclass(frozen=True)
class UploadSubmission:
    file_name: str
    file_size: int
    carrier_id: str | None
    uploaded_at: datetime
    uploaded_by: str | None = None
    file_type: str | None = None
    storage_path: str | None = None


@dataclass(frozen=True)
class UploadRecord:
    id: str
    file_name: str
    file_size: int
    carrier_id: str
    processing_status: ProcessingStatus
    uploaded_at: datetime | None = None
    processed_at: datetime | None = None
    updated_at: datetime | None = None
    result_id: str | None = None
    error: str | None = None
    uploaded_by: str | None = None
    version: int = 1

    @property
    def change_token(self) -> tuple:
        """Identifies a distinct observable state; equal tokens are duplicate notifications."""
        return (self.version, self.processing_status, self.result_id, self.error)


@dataclass(frozen=True)
class ExtractedRecord:
    record_type: RecordType
    data: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any]) -> ExtractedRecord:
        tag = raw.get("recordType")
        record_type = RecordType.CHARGE if tag == RecordType.CHARGE.value else RecordType.SHIPMENT
        return cls(record_type=record_type, data=dict(raw))


@dataclass(frozen=True)
class ResultRecord:
    """Extraction output. Written by the extraction engine, read-only here."""

    id: str
    records: tuple[ExtractedRecord, ...] = ()
    carrier: str | None = None
    confidence_score: int | None = None
    processing_time_ms: int | None = None
    raw_sample: str | None = None

    def shipments(self) -> list[ExtractedRecord]:
        return [r for r in self.records if r.record_type is RecordType.SHIPMENT]

    def charges(self) -> list[ExtractedRecord]:
        return [r for r in self.records if r.record_type is RecordType.CHARGE]

    @classmethod
    def from_document(cls, result_id: str, doc: Mapping[str, Any]) -> ResultRecord:
        # Older results stored their rows under "shipments" instead of "records"
        raw_records = doc.get("records")
        if raw_records is None:
            raw_records = doc.get("shipments") or []
        if not isinstance(raw_records, (list, tuple)):
            raw_records = []
        return cls(
            id=result_id,
            records=tuple(ExtractedRecord.from_raw(r) for r in raw_records if isinstance(r, Mapping)),
            carrier=doc.get("carrier"),
            confidence_score=_confidence_score(doc),
            processing_time_ms=doc.get("processingTimeMs"),
            raw_sample=doc.get("rawSample"),
        )


def _number(value: Any) -> Decimal | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        parsed = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    return parsed if parsed.is_finite() else None


def _confidence_score(doc: Mapping[str, Any]) -> int | None:
    """0-100 score; older results carry a 0-1 ``confidence`` instead."""
    score = _number(doc.get("confidenceScore"))
    if score is None:
        fraction = _number(doc.get("confidence"))
        if fraction is None:
            return None
        score = fraction * 100
    return int(score.to_integral_value(rounding=ROUND_HALF_EVEN))
