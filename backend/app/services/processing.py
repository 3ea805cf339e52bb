"""
Pipeline orchestrator: one run per inbound email.

Steps (each fatal failure is tagged with the step name):

  parse -> tenant-resolution -> idempotency-check -> ensure-folder
        -> upload -> share-link -> notify -> persist

  - parse: fetch + parse the raw email; "no PDF attachments" is fatal
  - tenant-resolution: unknown or inactive tenant is fatal
  - idempotency-check: an already processed message short-circuits to
    success with a warning and does no further work
  - ensure-folder: resolves the tenant's Graph credentials, then finds or
    creates the employee folder
  - upload: fatal only when every attachment fails; partial failures
    become warnings
  - share-link: failure falls back to the folder's own URL (warning)
  - notify: failure is a warning; uploads are never rolled back
  - persist: writes the processed record, warnings folded into `error`

Every fatal path writes a best-effort failed record before returning.
Runs are not cancellable once started.
"""

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, Optional

from app.models.submission import EmployeeSubmission
from app.models.tenant import Tenant
from app.models.tracking import FailedUpload, ProcessingRunResult, TrackingRecord
from app.services.email_parser import EmailParser
from app.services.notification import notify_reviewer
from app.services.onedrive import OneDriveService
from app.services.tenant_service import TenantDirectory, TenantNotFoundError
from app.services.tracking import TrackingLedger

logger = logging.getLogger(__name__)

STEP_PARSE = "parse"
STEP_TENANT_RESOLUTION = "tenant-resolution"
STEP_IDEMPOTENCY_CHECK = "idempotency-check"
STEP_ENSURE_FOLDER = "ensure-folder"
STEP_UPLOAD = "upload"
STEP_SHARE_LINK = "share-link"
STEP_NOTIFY = "notify"
STEP_PERSIST = "persist"

UNKNOWN_TENANT = "unknown"


class PipelineStepError(Exception):
    """A fatal pipeline failure attributed to a named step."""

    def __init__(self, step: str, message: str) -> None:
        super().__init__(message)
        self.step = step


@contextmanager
def pipeline_step(step: str) -> Iterator[None]:
    """Re-raise any failure inside the block as a PipelineStepError for ``step``."""
    try:
        yield
    except PipelineStepError:
        raise
    except Exception as e:
        raise PipelineStepError(step, str(e)) from e


class EmailProcessor:
    def __init__(
        self,
        parser: EmailParser,
        tenants: TenantDirectory,
        ledger: TrackingLedger,
        drive: OneDriveService,
        email_sender,
        default_bucket: str,
    ) -> None:
        self._parser = parser
        self._tenants = tenants
        self._ledger = ledger
        self._drive = drive
        self._email_sender = email_sender
        self._default_bucket = default_bucket

    async def process_email(self, key: str, bucket: Optional[str] = None) -> ProcessingRunResult:
        """Run the whole pipeline for the raw email stored at ``bucket/key``."""
        bucket = bucket or self._default_bucket
        message_id = key
        submission: Optional[EmployeeSubmission] = None
        tenant: Optional[Tenant] = None
        documents_failed: list[FailedUpload] = []

        try:
            with pipeline_step(STEP_PARSE):
                submission = await self._parser.parse_from_storage(bucket, key)
            message_id = submission.message_id

            with pipeline_step(STEP_TENANT_RESOLUTION):
                tenant = await self._tenants.resolve_by_receiving_email(submission.recipient_email)
                if tenant is None:
                    raise TenantNotFoundError(
                        f"No tenant configured for receiving email {submission.recipient_email!r}"
                    )
                self._tenants.assert_active(tenant)

            with pipeline_step(STEP_IDEMPOTENCY_CHECK):
                already_processed = await self._ledger.is_already_processed(
                    message_id, tenant.tenant_id
                )
            if already_processed:
                logger.info(f"Message {message_id} already processed for tenant {tenant.tenant_id}; skipping")
                return ProcessingRunResult(
                    success=True,
                    message_id=message_id,
                    tenant_id=tenant.tenant_id,
                    employee_name=submission.employee_name,
                    employee_email=submission.employee_email,
                    warnings=[f"Message {message_id} was already processed; skipped"],
                )

            return await self._process_submission(submission, tenant, documents_failed)

        except PipelineStepError as e:
            logger.error(f"Failed to process {bucket}/{key} at step {e.step}: {e}")
            await self._ledger.record_failure(
                tenant.tenant_id if tenant else UNKNOWN_TENANT,
                message_id,
                submission.employee_name if submission else "",
                submission.employee_email if submission else "",
                f"[{e.step}] {e}",
            )
            return ProcessingRunResult(
                success=False,
                message_id=message_id,
                tenant_id=tenant.tenant_id if tenant else None,
                employee_name=submission.employee_name if submission else None,
                employee_email=submission.employee_email if submission else None,
                documents_failed=documents_failed or None,
                error=str(e),
                failed_at_step=e.step,
            )

    async def _process_submission(
        self,
        submission: EmployeeSubmission,
        tenant: Tenant,
        documents_failed: list[FailedUpload],
    ) -> ProcessingRunResult:
        warnings: list[str] = []

        with pipeline_step(STEP_ENSURE_FOLDER):
            credentials = await self._tenants.resolve_credentials(tenant)
            folder = await self._drive.create_employee_folder(
                submission.employee_name, tenant, credentials
            )

        with pipeline_step(STEP_UPLOAD):
            upload = await self._drive.upload_all_documents(
                folder.id, submission.attachments, tenant, credentials
            )
        documents_failed.extend(upload.failed)
        for failure in upload.failed:
            warnings.append(f"Failed to upload {failure.name}: {failure.error}")
        if not upload.uploaded:
            raise PipelineStepError(
                STEP_UPLOAD,
                f"All {len(upload.failed)} document upload(s) failed: "
                + "; ".join(f"{f.name}: {f.error}" for f in upload.failed),
            )

        try:
            folder_url = await self._drive.create_sharing_link(folder.id, tenant, credentials)
        except Exception as e:
            logger.warning(f"Sharing link for folder {folder.id} failed: {e}")
            folder_url = folder.web_url
            warnings.append(f"Sharing link creation failed; using folder URL instead: {e}")

        processed_at = datetime.now(timezone.utc).isoformat()

        try:
            await notify_reviewer(
                self._email_sender,
                tenant,
                employee_name=submission.employee_name,
                employee_email=submission.employee_email,
                documents=upload.uploaded,
                folder_url=folder_url,
                processed_at=processed_at,
            )
        except Exception as e:
            logger.warning(f"Reviewer notification for {submission.message_id} failed: {e}")
            warnings.append(f"Reviewer notification failed: {e}")

        record = TrackingRecord(
            tenant_id=tenant.tenant_id,
            message_id=submission.message_id,
            employee_name=submission.employee_name,
            employee_email=submission.employee_email,
            folder_url=folder_url,
            documents_uploaded=upload.uploaded,
            processed_at=processed_at,
            status="processed",
            error="; ".join(warnings) if warnings else None,
        )
        with pipeline_step(STEP_PERSIST):
            await self._ledger.save_processing_record(record)

        logger.info(
            f"Processed {submission.message_id} for tenant {tenant.tenant_id}: "
            f"{len(upload.uploaded)} uploaded, {len(upload.failed)} failed"
        )
        return ProcessingRunResult(
            success=True,
            message_id=submission.message_id,
            tenant_id=tenant.tenant_id,
            employee_name=submission.employee_name,
            employee_email=submission.employee_email,
            folder_url=folder_url,
            documents_uploaded=upload.uploaded,
            documents_failed=upload.failed,
            warnings=warnings or None,
        )
