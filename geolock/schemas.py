"""
Validated request bodies for the HTTP surface.

Field aliases follow the camelCase JSON sent by the mobile client.
"""
from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from .models import Position, TokenChannel


class _Request(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class LocationIn(_Request):
    lat: float = Field(..., ge=-90, le=90)
    lon: float = Field(..., ge=-180, le=180)
    uncertainty: float | None = None
    service_type: str | None = Field(None, alias="serviceType")

    def to_position(self) -> Position:
        return Position(
            lat=self.lat,
            lon=self.lon,
            uncertainty=self.uncertainty,
            service_type=self.service_type,
        )


class LockRequest(_Request):
    device_id: str = Field(..., alias="deviceId", min_length=1)
    location: LocationIn
    locked_at: datetime | None = Field(None, alias="lockedAt")


class UnlockRequest(_Request):
    device_id: str = Field(..., alias="deviceId", min_length=1)
    unlocked_at: datetime | None = Field(None, alias="unlockedAt")


class TokenRequest(_Request):
    device_id: str = Field(..., alias="deviceId", min_length=1)
    token: str = Field(..., alias="fcmToken", min_length=1)
    owner: str | None = Field(None, alias="userId")
    platform: str | None = None
    channel: Literal["topic", "direct"] = "direct"

    @property
    def token_channel(self) -> TokenChannel:
        return TokenChannel(self.channel)


class AlertsQuery(_Request):
    device_id: str | None = Field(None, alias="deviceId")
    limit: int = Field(10, ge=1, le=100)
    severity: Literal["low", "medium", "high"] | None = None


class StatusQuery(_Request):
    device_id: str | None = Field(None, alias="deviceId")
