"""
Subset of Microsoft Graph response shapes the drive operations rely on.

Graph sends many more fields; unknown fields are ignored.
"""

from typing import Optional
from pydantic import BaseModel, Field


class GraphTokenResponse(BaseModel):
    model_config = {"extra": "ignore"}

    access_token: str
    token_type: str = "Bearer"
    expires_in: int


class DriveItem(BaseModel):
    model_config = {"extra": "ignore", "populate_by_name": True}

    id: str
    name: str
    web_url: str = Field("", alias="webUrl")
    folder: Optional[dict] = None

    @property
    def is_folder(self) -> bool:
        return self.folder is not None


class SharingLinkDetail(BaseModel):
    model_config = {"extra": "ignore", "populate_by_name": True}

    web_url: str = Field(alias="webUrl")
    type: Optional[str] = None
    scope: Optional[str] = None


class SharingLink(BaseModel):
    model_config = {"extra": "ignore"}

    id: Optional[str] = None
    link: SharingLinkDetail
