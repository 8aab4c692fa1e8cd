"""
Runtime configuration for geolock.

Settings are read once from the environment (and an optional .env file) and
then passed explicitly to the components that need them. No other module
reads os.environ.
"""
from __future__ import annotations

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .const import (
    ALERT_TOPIC_TEMPLATE,
    CHECK_INTERVAL,
    DEFAULT_THRESHOLD_M,
    INDICATOR_OFF_DELAY,
    NRF_CLOUD_BASE_URL,
)


class Settings(BaseSettings):
    # nRF Cloud
    nrf_cloud_api_key: str = Field("", alias="NRF_CLOUD_API_KEY")
    nrf_cloud_base_url: str = Field(NRF_CLOUD_BASE_URL, alias="NRF_CLOUD_BASE_URL")

    # Devices watched by the scheduler, comma separated
    device_ids_raw: str = Field("", alias="GEOLOCK_DEVICE_IDS")

    # Geofence
    threshold_m: float = Field(DEFAULT_THRESHOLD_M, alias="GEOLOCK_THRESHOLD_M", gt=0)
    check_interval: int = Field(CHECK_INTERVAL, alias="GEOLOCK_CHECK_INTERVAL", gt=0)
    indicator_off_delay: float = Field(INDICATOR_OFF_DELAY, alias="GEOLOCK_INDICATOR_OFF_DELAY", ge=0)

    # Persistence / push
    store_backend: str = Field("memory", alias="GEOLOCK_STORE")
    firebase_credentials: str | None = Field(None, alias="FIREBASE_CREDENTIALS")

    # Application
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    http_host: str = Field("0.0.0.0", alias="GEOLOCK_HTTP_HOST")
    http_port: int = Field(8080, alias="GEOLOCK_HTTP_PORT")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("store_backend")
    @classmethod
    def _check_store_backend(cls, value: str) -> str:
        value = value.strip().lower()
        if value not in {"memory", "firestore"}:
            raise ValueError(f"Unknown store backend: {value}")
        return value

    def alert_topic(self, device_id: str) -> str:
        """Topic every recipient of device_id is subscribed to."""
        return ALERT_TOPIC_TEMPLATE.format(device_id=device_id)

    @property
    def device_ids(self) -> list[str]:
        return [part.strip() for part in self.device_ids_raw.split(",") if part.strip()]

    @property
    def default_device_id(self) -> str | None:
        return self.device_ids[0] if self.device_ids else None


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Retrieve a cached instance of Settings to avoid repeated env parsing.
    """
    return Settings()


__all__ = ["Settings", "get_settings"]
