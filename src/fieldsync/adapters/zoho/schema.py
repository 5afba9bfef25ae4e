"""Pydantic models describing the Zoho CRM v2 payloads we rely on."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class ZohoBaseModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class SearchResponse(ZohoBaseModel):
    data: list[dict[str, object]] = Field(default_factory=list)


class UpsertDetail(ZohoBaseModel):
    code: str
    status: Literal["success", "error"]
    message: str = ""
    details: dict[str, object] = Field(default_factory=dict)
    action: str | None = Field(default=None, alias="action")


class UpsertResponse(ZohoBaseModel):
    data: list[UpsertDetail]


class ErrorResponse(ZohoBaseModel):
    code: str = "UNKNOWN"
    message: str = ""
    status: str = "error"


class TokenResponse(ZohoBaseModel):
    access_token: str
    expires_in: int = 3600
    api_domain: str | None = None
    token_type: str = "Bearer"


class TokenErrorResponse(ZohoBaseModel):
    error: str
