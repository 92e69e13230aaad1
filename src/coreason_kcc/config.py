# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_kcc

"""
Configuration for the coreason-kcc package.
"""

from urllib.parse import urlparse

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SPLIT_THRESHOLD = 256


class KccSettings(BaseSettings):
    """
    Configuration settings for the configuration delivery client.

    Attributes:
        endpoint (str | None): Base URL of the configuration service (e.g. https://kcc.example.com).
        http_timeout (float): Timeout in seconds for every network operation.
        insecure_skip_verify (bool): Disable TLS certificate verification. Explicit opt-in only.
        split_threshold (int): Serialized size in bytes above which a config is split per user.
        max_response_bytes (int): Upper bound for any response body read from the service.
        retry_attempts (int): Attempts per request on network failure. 1 means no retry.
        retry_wait_initial (float): First backoff delay in seconds.
        retry_wait_max (float): Upper bound of the backoff delay in seconds.
    """

    model_config = SettingsConfigDict(
        env_prefix="COREASON_KCC_",
        case_sensitive=False,
    )

    endpoint: str | None = None
    http_timeout: float = Field(default=5.0, gt=0, description="Timeout in seconds for all service network operations.")
    insecure_skip_verify: bool = False
    split_threshold: int = Field(default=DEFAULT_SPLIT_THRESHOLD, ge=0)
    max_response_bytes: int = Field(default=1_000_000, gt=0)
    retry_attempts: int = Field(default=1, ge=1)
    retry_wait_initial: float = Field(default=0.1, ge=0)
    retry_wait_max: float = Field(default=1.0, ge=0)

    @field_validator("endpoint")
    @classmethod
    def normalize_endpoint(cls, v: str | None) -> str | None:
        """
        Strips whitespace and trailing slashes, and requires an http(s) URL with a host.

        Args:
            v: The raw endpoint string.

        Returns:
            The normalized endpoint, or None if unset.

        Raises:
            ValueError: If the endpoint is not an absolute http(s) URL.
        """
        if v is None:
            return None
        v = v.strip().rstrip("/")
        parsed = urlparse(v)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"Endpoint must be an absolute http(s) URL, got '{v}'")
        return v

    @model_validator(mode="after")
    def check_backoff_bounds(self) -> "KccSettings":
        if self.retry_wait_max < self.retry_wait_initial:
            raise ValueError("retry_wait_max must not be smaller than retry_wait_initial")
        return self
