"""Schemas for push token registration."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, constr


class PushTokenRegister(BaseModel):
    token: constr(strip_whitespace=True, min_length=1, max_length=255)
    device_type: constr(strip_whitespace=True, max_length=32) = Field(default="unknown")


class PushTokenUnregister(BaseModel):
    token: str | None = Field(default=None, description="Token to remove; all tokens are removed when omitted")


class PushTokenRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    token: str
    device_type: str
    created_at: datetime
