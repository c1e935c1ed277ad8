from __future__ import annotations

import logging

from freight_billing.core.errors import MissingCarrierError, ValidationError
from freight_billing.ingestion.models import UploadRecord, UploadSubmission
from freight_billing.stores.base import RecordStore

logger = logging.getLogger(__name__)


class UploadTracker:
    """Creates upload records for the extraction engine to pick up."""

    def __init__(self, store: RecordStore) -> None:
        self._store = store

    async def submit(self, submission: UploadSubmission) -> UploadRecord:
        # Validation happens before anything is written
        if not (submission.carrier_id or "").strip():
            logger.warning("upload_rejected_missing_carrier", extra={"file_name": submission.file_name})
            raise MissingCarrierError(submission.file_name)
        if not submission.file_name.strip():
            raise ValidationError("A file name is required")
        if submission.file_size < 0:
            raise ValidationError("File size cannot be negative")

        record = await self._store.create_upload(submission)
        logger.info(
            "upload_created",
            extra={
                "upload_id": record.id,
                "carrier_id": record.carrier_id,
                "file_name": record.file_name,
                "store": self._store.name,
            },
        )
        return record
