"""
Queue batch models.

Each record points at one raw email in storage. The response lists only
the records that should be redelivered.
"""

from typing import Optional
from pydantic import BaseModel, Field


class QueueRecord(BaseModel):
    model_config = {"populate_by_name": True, "extra": "ignore"}

    message_id: str = Field(alias="messageId")
    key: str
    bucket: Optional[str] = None


class BatchItemFailure(BaseModel):
    model_config = {"populate_by_name": True}

    item_identifier: str = Field(serialization_alias="itemIdentifier")


class BatchResponse(BaseModel):
    batch_item_failures: list[BatchItemFailure] = Field(
        default_factory=list, serialization_alias="batchItemFailures"
    )
