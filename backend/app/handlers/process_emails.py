"""
Queue batch handler.

Each queue record points at one raw email in storage. Records are run
through the pipeline with bounded concurrency; only the failed records are
reported back for redelivery. When every record in a non-empty batch fails,
BatchProcessingError is raised so the whole batch is redelivered.

Every invocation runs on a fresh event loop, so the HTTP clients are opened
and closed inside that run.
"""

import asyncio
import json
import logging
import time
from typing import Any

from pydantic import ValidationError

from app.config import get_settings
from app.dependencies import build_processor, new_email_sender, new_graph_client
from app.models.queue import BatchItemFailure, BatchResponse, QueueRecord
from app.models.tracking import ProcessingRunResult
from app.services.processing import EmailProcessor
from app.utils.resilience import Fulfilled, map_with_concurrency

logger = logging.getLogger(__name__)


class BatchProcessingError(Exception):
    pass


def _record_identifier(raw: Any) -> str:
    if isinstance(raw, dict):
        return str(raw.get("messageId") or raw.get("message_id") or "unknown")
    return "unknown"


async def handle_batch(
    records: list[dict],
    processor: EmailProcessor,
    concurrency: int = 5,
) -> BatchResponse:
    started = time.monotonic()

    async def process_record(raw: dict, _index: int) -> ProcessingRunResult:
        record = QueueRecord.model_validate(raw)
        return await processor.process_email(record.key, record.bucket)

    settled = await map_with_concurrency(records, concurrency, process_record)

    failures: list[BatchItemFailure] = []
    summaries: list[dict] = []
    for raw, outcome in zip(records, settled):
        identifier = _record_identifier(raw)
        if isinstance(outcome, Fulfilled):
            result: ProcessingRunResult = outcome.value
            summaries.append(
                {
                    "item": identifier,
                    "success": result.success,
                    "message_id": result.message_id,
                    "failed_at_step": result.failed_at_step,
                    "error": result.error,
                }
            )
            if result.success:
                continue
        else:
            error = outcome.error
            reason = "invalid queue record" if isinstance(error, ValidationError) else str(error)
            summaries.append({"item": identifier, "success": False, "error": reason})
        failures.append(BatchItemFailure(item_identifier=identifier))

    summary = {
        "duration_ms": round((time.monotonic() - started) * 1000),
        "total": len(records),
        "succeeded": len(records) - len(failures),
        "failed": len(failures),
    }

    if failures:
        logger.error(f"Some emails failed processing: {json.dumps({**summary, 'results': summaries})}")
    else:
        logger.info(f"Batch processed: {json.dumps(summary)}")

    if records and len(failures) == len(records):
        errors = "; ".join(str(s.get("error")) for s in summaries)
        raise BatchProcessingError(
            f"All {len(failures)} email(s) failed processing; failing the batch for redelivery. "
            f"Errors: {errors}"
        )

    return BatchResponse(batch_item_failures=failures)


async def _run_batch(records: list[dict]) -> BatchResponse:
    settings = get_settings()
    graph = new_graph_client()
    email_sender = new_email_sender()
    try:
        processor = build_processor(graph, email_sender)
        return await handle_batch(records, processor, settings.email_concurrency)
    finally:
        await graph.aclose()
        await email_sender.aclose()


def handler(event: dict, context: Any = None) -> dict:
    """
    Entry point for a queue-triggered worker.

    ``event["Records"]`` holds the queue records; the return value is the
    partial-batch response the queue uses to redeliver failed records.
    """
    response = asyncio.run(_run_batch(event.get("Records", [])))
    return response.model_dump(by_alias=True)
