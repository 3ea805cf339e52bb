"""
Tracking ledger: one row per inbound message_id.

Idempotency rules:
  - a message is "already processed" only when a processed row exists AND
    belongs to the asking tenant; a tenant mismatch is logged as a security
    event and reported as not processed
  - writes succeed when no row exists or the existing row is failed; a
    processed row is never replaced

The conditional write relies on the table's primary key: the insert is
attempted first and, on a unique violation, the row is updated only where
status = 'failed'. Both steps are single atomic statements in Postgres.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Optional

import httpx
from postgrest.exceptions import APIError

from app.db import execute
from app.models.tracking import TrackingRecord
from app.utils.resilience import RetryOptions, with_retry

logger = logging.getLogger(__name__)
security_logger = logging.getLogger("app.security")

_UNIQUE_VIOLATION = "23505"
# PostgREST could not reach / was not ready to query the database.
_TRANSIENT_POSTGREST_CODES = {"PGRST000", "PGRST001", "PGRST002"}


class DuplicateRecordError(Exception):
    """A processed record already exists for this message_id."""


def is_transient_db_error(error: BaseException) -> bool:
    if isinstance(error, httpx.TransportError):
        return True
    return isinstance(error, APIError) and error.code in _TRANSIENT_POSTGREST_CODES


class TrackingLedger:
    def __init__(
        self,
        client,
        table: str = "tracking_records",
        retry_options: Optional[RetryOptions] = None,
    ) -> None:
        self._client = client
        self._table = table
        base = retry_options or RetryOptions()
        self._retry = RetryOptions(
            max_attempts=base.max_attempts,
            base_delay=base.base_delay,
            max_delay=base.max_delay,
            is_retryable=is_transient_db_error,
        )

    async def is_already_processed(self, message_id: str, tenant_id: str) -> bool:
        result = await with_retry(
            lambda: execute(
                self._client.table(self._table)
                .select("status, tenant_id")
                .eq("message_id", message_id)
            ),
            self._retry,
        )
        if not result.data:
            return False

        row = result.data[0]
        if row.get("tenant_id") != tenant_id:
            security_logger.warning(
                json.dumps(
                    {
                        "event": "cross_tenant_duplicate_check",
                        "message_id": message_id,
                        "expected_tenant": tenant_id,
                        "found_tenant": row.get("tenant_id"),
                    }
                )
            )
            return False

        return row.get("status") == "processed"

    async def _write_if_absent_or_failed(self, record: TrackingRecord) -> bool:
        row = record.model_dump()

        async def attempt() -> bool:
            try:
                await execute(self._client.table(self._table).insert(row))
                return True
            except APIError as e:
                if e.code != _UNIQUE_VIOLATION:
                    raise

            result = await execute(
                self._client.table(self._table)
                .update(row)
                .eq("message_id", record.message_id)
                .eq("status", "failed")
            )
            return bool(result.data)

        return await with_retry(attempt, self._retry)

    async def save_processing_record(self, record: TrackingRecord) -> None:
        """
        Write a record, replacing only a prior failed record.

        Raises:
            DuplicateRecordError: a processed record already exists
        """
        written = await self._write_if_absent_or_failed(record)
        if not written:
            raise DuplicateRecordError(
                f"Message {record.message_id} already has a processed record"
            )

    async def record_failure(
        self,
        tenant_id: str,
        message_id: str,
        employee_name: str,
        employee_email: str,
        error: str,
    ) -> None:
        """
        Best-effort write of a failed record. Never raises: failing to
        record a failure must not mask the original failure.
        """
        record = TrackingRecord(
            tenant_id=tenant_id,
            message_id=message_id,
            employee_name=employee_name,
            employee_email=employee_email,
            folder_url="",
            documents_uploaded=[],
            processed_at=datetime.now(timezone.utc).isoformat(),
            status="failed",
            error=error,
        )
        try:
            written = await self._write_if_absent_or_failed(record)
        except Exception as e:
            logger.error(f"Failed to record failure for message {message_id}: {e}")
            return

        if not written:
            logger.warning(
                f"Not recording failure for message {message_id}: a processed record exists"
            )

    async def get_records_by_tenant(self, tenant_id: str) -> list[TrackingRecord]:
        result = await with_retry(
            lambda: execute(
                self._client.table(self._table).select("*").eq("tenant_id", tenant_id)
            ),
            self._retry,
        )
        return [TrackingRecord(**row) for row in result.data or []]
