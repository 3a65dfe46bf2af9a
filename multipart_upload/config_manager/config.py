"""Resolve client configuration from a profile file, environment, and overrides."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml

from multipart_upload.config_manager.helpers import parse_bytes
from multipart_upload.config_manager.upload_config import UploadConfig
from multipart_upload.exceptions import MultipartUploadError

_ENV_MAP: dict[str, str] = {
    "endpoint": "MPU_ENDPOINT",
    "request_timeout": "MPU_REQUEST_TIMEOUT",
    "max_retry_count": "MPU_MAX_RETRY_COUNT",
    "retry_base_delay": "MPU_RETRY_BASE_DELAY",
    "max_backoff_seconds": "MPU_MAX_BACKOFF_SECONDS",
    "retry_timeout": "MPU_RETRY_TIMEOUT",
    "enable_crc": "MPU_ENABLE_CRC",
    "bandwidth_limit": "MPU_BANDWIDTH_LIMIT",
}

YES_CONFIRMATION = {"1", "true", "yes", "y"}


class ConfigNotFound(MultipartUploadError):
    """Raised when a requested profile file cannot be found on disk."""


class ConfigManager:
    """Build effective client configuration from profile, env, and overrides."""

    def __init__(self, profile_path: Path | str | None = None) -> None:
        """Initialise ConfigManager.

        Args:
            profile_path: Optional YAML file used as the base configuration.
        """
        self.profile_path = Path(profile_path).expanduser() if profile_path else None

    def _read_profile(self) -> dict[str, Any]:
        """Load the base configuration from the YAML profile, if any.

        Raises:
            ConfigNotFound: If the profile file does not exist.
        """
        if self.profile_path is None:
            return {}
        try:
            with self.profile_path.open("r") as profile_file:
                return yaml.safe_load(profile_file) or {}
        except FileNotFoundError as exc:
            raise ConfigNotFound(
                f"Profile {str(self.profile_path)!r} not found."
            ) from exc

    def _read_env_overrides(self) -> dict[str, Any]:
        """Read configuration overrides from environment variables.

        Values that fail to parse are skipped.

        Returns:
            A dictionary of configuration field names to override values.
        """
        overrides: dict[str, Any] = {}

        for field_name, env_var_name in _ENV_MAP.items():
            env_value = os.getenv(env_var_name)
            if env_value is None:
                continue

            if field_name == "bandwidth_limit":
                try:
                    overrides[field_name] = parse_bytes(env_value)
                except ValueError:
                    continue
            elif field_name == "max_retry_count":
                try:
                    overrides[field_name] = int(env_value)
                except ValueError:
                    continue
            elif field_name in {
                "request_timeout",
                "retry_base_delay",
                "max_backoff_seconds",
                "retry_timeout",
            }:
                try:
                    overrides[field_name] = float(env_value)
                except ValueError:
                    continue
            elif field_name == "enable_crc":
                overrides[field_name] = env_value.lower() in YES_CONFIRMATION
            else:
                overrides[field_name] = env_value

        return overrides

    def resolve_effective_config(
        self, overrides: dict[str, Any] | None = None
    ) -> UploadConfig:
        """Resolve the effective client configuration.

        Later sources win: profile file, then environment, then ``overrides``.
        Override values of ``None`` are ignored.

        Args:
            overrides: Optional explicit configuration overrides.

        Returns:
            The resolved ``UploadConfig``.
        """
        merged: dict[str, Any] = dict(self._read_profile())
        merged.update(self._read_env_overrides())
        if overrides:
            merged.update(
                {name: value for name, value in overrides.items() if value is not None}
            )
        return UploadConfig(**merged)
