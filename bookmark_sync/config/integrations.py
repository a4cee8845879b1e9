from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from bookmark_sync.adapters.linkding.executor import RetryPolicy
from bookmark_sync.adapters.linkding.rate_limiter import TokenBucket
from bookmark_sync.adapters.linkding.sync.models import SyncOptions
from bookmark_sync.adapters.linkding.transport import TransportConfig

from ._validators import _parse_positive_number

logger = logging.getLogger(__name__)


class LinkdingConfig(BaseModel):
    """Linkding connection and sync defaults."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    api_url: str = Field(default="", validation_alias="LINKDING_URL")
    api_token: str = Field(default="", validation_alias="LINKDING_TOKEN")
    rate_limit: float = Field(default=5.0, validation_alias="LINKDING_RATE_LIMIT")
    rate_burst: int = Field(default=2, validation_alias="LINKDING_RATE_BURST")
    max_retries: int = Field(default=3, validation_alias="LINKDING_MAX_RETRIES")
    retry_base_delay: float = Field(default=1.0, validation_alias="LINKDING_RETRY_BASE_DELAY")
    connect_timeout: float = Field(default=10.0, validation_alias="LINKDING_CONNECT_TIMEOUT")
    request_timeout: float = Field(default=30.0, validation_alias="LINKDING_REQUEST_TIMEOUT")
    force_ipv4: bool = Field(default=True, validation_alias="LINKDING_FORCE_IPV4")
    sync_title: bool = Field(default=False, validation_alias="LINKDING_SYNC_TITLE")
    sync_tags: bool = Field(default=False, validation_alias="LINKDING_SYNC_TAGS")
    url_field: str = Field(default="url", validation_alias="LINKDING_URL_FIELD")
    id_field: str = Field(default="linkding_id", validation_alias="LINKDING_ID_FIELD")
    max_workers: int = Field(default=1, validation_alias="LINKDING_MAX_WORKERS")

    @field_validator("api_url", mode="before")
    @classmethod
    def _validate_api_url(cls, value: Any) -> str:
        url = str(value or "").strip()
        if not url:
            return ""
        if not url.startswith(("http://", "https://")):
            msg = "Linkding URL must start with http:// or https://"
            raise ValueError(msg)
        return url.rstrip("/")

    @field_validator("api_token", mode="before")
    @classmethod
    def _validate_api_token(cls, value: Any) -> str:
        if value in (None, ""):
            return ""
        token = str(value).strip()
        if len(token) > 500:
            msg = "Linkding API token appears to be too long"
            raise ValueError(msg)
        return token

    @field_validator("rate_limit", "connect_timeout", "request_timeout", mode="before")
    @classmethod
    def _validate_positive_float(cls, value: Any, info: ValidationInfo) -> float:
        default = cls.model_fields[info.field_name].default
        return _parse_positive_number(
            value, default=default, name=info.field_name.replace("_", " ").capitalize()
        )

    @field_validator("retry_base_delay", mode="before")
    @classmethod
    def _validate_retry_base_delay(cls, value: Any) -> float:
        try:
            parsed = float(str(value if value not in (None, "") else 1.0))
        except ValueError as exc:
            msg = "Retry base delay must be a valid number"
            raise ValueError(msg) from exc
        if parsed < 0 or parsed > 60:
            msg = "Retry base delay must be between 0 and 60 seconds"
            raise ValueError(msg)
        return parsed

    @field_validator("rate_burst", mode="before")
    @classmethod
    def _validate_rate_burst(cls, value: Any) -> int:
        try:
            parsed = int(str(value if value not in (None, "") else 2))
        except ValueError as exc:
            msg = "Linkding rate burst must be a valid integer"
            raise ValueError(msg) from exc
        if parsed < 1 or parsed > 100:
            msg = "Linkding rate burst must be between 1 and 100"
            raise ValueError(msg)
        return parsed

    @field_validator("max_retries", mode="before")
    @classmethod
    def _validate_max_retries(cls, value: Any) -> int:
        try:
            parsed = int(str(value if value not in (None, "") else 3))
        except ValueError as exc:
            msg = "Linkding max retries must be a valid integer"
            raise ValueError(msg) from exc
        if parsed < 0 or parsed > 10:
            msg = "Linkding max retries must be between 0 and 10"
            raise ValueError(msg)
        return parsed

    @field_validator("max_workers", mode="before")
    @classmethod
    def _validate_max_workers(cls, value: Any) -> int:
        try:
            parsed = int(str(value if value not in (None, "") else 1))
        except ValueError as exc:
            msg = "Linkding max workers must be a valid integer"
            raise ValueError(msg) from exc
        if parsed < 1 or parsed > 32:
            msg = "Linkding max workers must be between 1 and 32"
            raise ValueError(msg)
        return parsed

    @field_validator("url_field", "id_field", mode="before")
    @classmethod
    def _validate_field_name(cls, value: Any, info: ValidationInfo) -> str:
        name = str(value or "").strip()
        if not name:
            return str(cls.model_fields[info.field_name].default)
        return name

    @property
    def is_configured(self) -> bool:
        return bool(self.api_url and self.api_token)

    def transport_config(self) -> TransportConfig:
        return TransportConfig(
            connect_timeout=self.connect_timeout,
            request_timeout=self.request_timeout,
            force_ipv4=self.force_ipv4,
        )

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(max_retries=self.max_retries, base_delay=self.retry_base_delay)

    def rate_limiter(self) -> TokenBucket:
        return TokenBucket(rate=self.rate_limit, burst=self.rate_burst)

    def to_sync_options(self, **overrides: Any) -> SyncOptions:
        """Default ``SyncOptions`` for this deployment; keyword overrides win."""
        values: dict[str, Any] = {
            "url_field": self.url_field,
            "id_field": self.id_field,
            "sync_title": self.sync_title,
            "sync_tags": self.sync_tags,
            "max_workers": self.max_workers,
        }
        values.update(overrides)
        return SyncOptions(**values)
