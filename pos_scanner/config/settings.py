"""
==============================================================================
Application Settings Module
==============================================================================

Configuration management using Pydantic Settings.

A single cached Settings instance is shared by the whole application.

Configuration Priority (highest to lowest):
------------------------------------------
1. Environment variables
2. .env file
3. Default values

Camera Settings:
---------------
- ENVIRONMENT_CAMERA_INDEX: device index of the rear (environment) camera
- USER_CAMERA_INDEX: device index of the front (user) camera
- CAMERA_WIDTH / CAMERA_HEIGHT: ideal capture resolution
- DECODE_FPS: decode attempts per second while streaming

==============================================================================
"""

from __future__ import annotations

import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Module logger
logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Attributes:
        app_name: Display name for the application
        app_env: Environment mode (development/staging/production)
        debug: Enable debug mode for verbose logging
        host: Server bind address
        port: Server port number
        cors_origins: Allowed CORS origins (JSON array string)
        products_file: Path to the store/product catalog JSON
        scan_policy: Default policy for capture sessions
        environment_camera_index: Device index preferred for scanning
        user_camera_index: Fallback device index
        camera_width: Ideal frame width
        camera_height: Ideal frame height
        decode_fps: Decode attempts per second
        decode_fault_limit: Consecutive decode faults before giving up (0 = never)
        haptic_duration_ms: Vibration cue length sent to the client
        snapshot_jpeg_quality: JPEG quality of preview snapshots

    Example:
        >>> settings = Settings()
        >>> settings.scan_policy
        'close_on_first_scan'
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        validate_default=True,
    )

    # =========================================================================
    # APPLICATION SETTINGS
    # =========================================================================
    app_name: str = Field(
        default="POS Barcode Capture",
        description="Display name for the application"
    )

    app_env: str = Field(
        default="development",
        description="Environment mode: development, staging, production"
    )

    debug: bool = Field(
        default=True,
        description="Enable debug mode for verbose logging"
    )

    # =========================================================================
    # SERVER SETTINGS
    # =========================================================================
    host: str = Field(
        default="0.0.0.0",
        description="Server bind address"
    )

    port: int = Field(
        default=8000,
        ge=1,
        le=65535,
        description="Server port number"
    )

    cors_origins: str = Field(
        default='["*"]',
        description="Allowed CORS origins as JSON array string"
    )

    # =========================================================================
    # CATALOG SETTINGS
    # =========================================================================
    products_file: str = Field(
        default="data/catalog.json",
        description="Path to store/product catalog JSON"
    )

    # =========================================================================
    # CAPTURE SETTINGS
    # =========================================================================
    scan_policy: str = Field(
        default="close_on_first_scan",
        description="close_on_first_scan, stay_open_dedupe_by_value or stay_open_allow_repeats"
    )

    environment_camera_index: int = Field(
        default=0,
        ge=0,
        description="Device index of the rear camera"
    )

    user_camera_index: int = Field(
        default=1,
        ge=0,
        description="Device index of the front camera"
    )

    camera_width: int = Field(
        default=1280,
        ge=160,
        le=3840,
        description="Ideal capture width"
    )

    camera_height: int = Field(
        default=720,
        ge=120,
        le=2160,
        description="Ideal capture height"
    )

    decode_fps: float = Field(
        default=15.0,
        gt=0,
        le=60,
        description="Decode attempts per second"
    )

    decode_fault_limit: int = Field(
        default=0,
        ge=0,
        description="Consecutive decode faults that close the session (0 = never)"
    )

    haptic_duration_ms: int = Field(
        default=200,
        ge=0,
        le=2000,
        description="Vibration cue length in milliseconds (0 disables)"
    )

    snapshot_jpeg_quality: int = Field(
        default=80,
        ge=10,
        le=100,
        description="JPEG quality for preview snapshots"
    )

    # =========================================================================
    # VALIDATORS
    # =========================================================================
    @field_validator("app_env")
    @classmethod
    def validate_app_env(cls, value: str) -> str:
        """Normalize the environment name, falling back to development."""
        valid_envs = {"development", "staging", "production"}
        normalized = value.lower().strip()

        if normalized not in valid_envs:
            logger.warning(
                f"Unknown environment '{value}', defaulting to 'development'"
            )
            return "development"

        return normalized

    @field_validator("scan_policy")
    @classmethod
    def validate_scan_policy(cls, value: str) -> str:
        """
        Validate the default scan policy name.

        Raises:
            ValueError: If the policy is not recognized
        """
        supported = {
            "close_on_first_scan",
            "stay_open_dedupe_by_value",
            "stay_open_allow_repeats",
        }
        normalized = value.lower().strip().replace("-", "_")

        if normalized not in supported:
            raise ValueError(
                f"Unsupported scan policy: {value}. "
                f"Supported: {', '.join(sorted(supported))}"
            )

        return normalized

    # =========================================================================
    # COMPUTED PROPERTIES
    # =========================================================================
    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.app_env == "production"

    @property
    def products_path(self) -> Path:
        """Get products file as Path object."""
        return Path(self.products_file)

    @property
    def decode_interval_seconds(self) -> float:
        """Delay between two decode attempts."""
        return 1.0 / self.decode_fps

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins from JSON string to list."""
        try:
            origins = json.loads(self.cors_origins)
            if isinstance(origins, list):
                return origins
            return ["*"]
        except json.JSONDecodeError:
            logger.warning(
                f"Invalid CORS origins JSON: {self.cors_origins}, "
                "defaulting to ['*']"
            )
            return ["*"]

    def __repr__(self) -> str:
        return (
            f"Settings(app_name={self.app_name!r}, "
            f"app_env={self.app_env!r}, "
            f"scan_policy={self.scan_policy!r}, "
            f"debug={self.debug})"
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get the global Settings instance.

    Returns:
        Cached Settings instance
    """
    settings = Settings()

    if settings.debug:
        logger.info(f"Configuration loaded: {settings}")

    return settings
