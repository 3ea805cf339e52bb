"""
Manual processing trigger.

POST /api/trigger  {"key": "<object key in the inbound email bucket>"}

The key is always read from the configured inbound bucket; a request that
names any other field is rejected with 422.

Business outcomes (including failed runs) are returned with 200 and carried
in the body's ``success`` field. 500 is reserved for exceptions that escape
the orchestrator.
"""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from app.auth import require_api_key
from app.dependencies import get_processor
from app.services.processing import EmailProcessor

logger = logging.getLogger(__name__)

router = APIRouter()


class TriggerRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    key: str = Field(min_length=1)


@router.post("")
async def trigger_processing(
    body: TriggerRequest,
    _: None = Depends(require_api_key),
    processor: EmailProcessor = Depends(get_processor),
):
    try:
        result = await processor.process_email(body.key)
    except Exception as e:
        logger.exception(f"Manual trigger for {body.key!r} failed")
        return JSONResponse(status_code=500, content={"success": False, "error": str(e)})

    return result.model_dump(exclude_none=True)
