"""Injector settings loaded from environment variables (prefix FLUID_AFFINITY_)."""

from __future__ import annotations

import logging
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from affinity_injector.shared.labels import FLUID_NODE_LOCALITY_KEY


class InjectorSettings(BaseSettings):
    """Settings shared by the lookup layer and the control plane."""

    model_config = SettingsConfigDict(
        env_prefix="FLUID_AFFINITY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Where the platform keeps its cluster-wide config
    fluid_namespace: str = "fluid-system"
    tiered_locality_config_map: str = "tiered-locality-config"
    tiered_locality_data_key: str = "tieredLocality"

    # Tiered-locality key that means "node caching this dataset"
    dataset_locality_key: str = FLUID_NODE_LOCALITY_KEY

    # Custom resources
    crd_group: str = "data.fluid.io"
    crd_version: str = "v1alpha1"

    # Resolution
    max_concurrent_resolutions: int = Field(1, ge=1)

    # What the transport should do when a decision fails
    fail_open: bool = False

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: str = "%(asctime)s %(levelname)s %(name)s: %(message)s"


_settings: Optional[InjectorSettings] = None


def get_settings() -> InjectorSettings:
    """Get or create the process-wide settings instance."""
    global _settings
    if _settings is None:
        _settings = InjectorSettings()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings (tests, config reload)."""
    global _settings
    _settings = None


def configure_logging(settings: Optional[InjectorSettings] = None) -> None:
    """Configure root logging for a hosting process. Libraries never call this."""
    settings = settings or get_settings()
    logging.basicConfig(level=settings.log_level, format=settings.log_format)
