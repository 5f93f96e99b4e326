from __future__ import annotations

import pytest

from affinity_injector.shared.config import InjectorSettings, reset_settings

from builders import FluidCluster


@pytest.fixture(autouse=True)
def _fresh_settings():
    """No test sees settings cached by another one."""
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def settings(monkeypatch) -> InjectorSettings:
    for var in ("FLUID_AFFINITY_MAX_CONCURRENT_RESOLUTIONS", "FLUID_AFFINITY_FAIL_OPEN"):
        monkeypatch.delenv(var, raising=False)
    return InjectorSettings(_env_file=None)


@pytest.fixture
def cluster(settings: InjectorSettings) -> FluidCluster:
    return FluidCluster(settings)
