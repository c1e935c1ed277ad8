from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


class EventType(str, enum.Enum):
    STATUS_UPDATE = "status_update"
    INVOICE_STATUS_CHANGE = "invoice_status_change"
    USER_ACTION = "user_action"


class EventSource(str, enum.Enum):
    SYSTEM = "system"
    USER = "user"


@dataclass(frozen=True)
class ShipmentEvent:
    """One audit trail entry, addressed to a shipment's storage identity."""

    shipment_id: str
    event_type: EventType
    title: str
    timestamp: datetime
    source: EventSource = EventSource.USER
    actor: str | None = None
    description: str = ""
    status_change: dict[str, Any] | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
