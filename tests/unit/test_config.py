"""Unit tests for configuration objects."""

import dataclasses

import pytest

from chunksync.config import GIB, MIB, PlanThresholds, ReplicationProfile, ReplicationSettings


@pytest.mark.unit
def test_threshold_defaults() -> None:
    thresholds = PlanThresholds()

    assert thresholds.max_size_bytes == 10 * GIB
    assert thresholds.max_files == 50_000
    assert thresholds.max_depth == 5
    assert thresholds.min_size_bytes == 100 * MIB


@pytest.mark.unit
@pytest.mark.parametrize("kwargs", [
    {"max_size_bytes": 0},
    {"max_files": 0},
    {"max_depth": -1},
    {"min_size_bytes": -1},
])
def test_invalid_thresholds(kwargs) -> None:
    with pytest.raises(ValueError):
        PlanThresholds(**kwargs)


@pytest.mark.unit
def test_settings_defaults() -> None:
    settings = ReplicationSettings()

    assert settings.max_concurrent_jobs == 4
    assert settings.max_retries == 3
    assert settings.fatal_max_retries == 1
    assert settings.retry_delay == 0.0
    assert settings.job_timeout is None
    assert settings.circuit_failure_threshold == 5
    assert settings.circuit_window == 300.0
    assert settings.circuit_cooldown == 120.0
    assert settings.thresholds == PlanThresholds()


@pytest.mark.unit
@pytest.mark.parametrize("kwargs", [
    {"max_concurrent_jobs": 0},
    {"max_retries": -1},
    {"fatal_max_retries": -1},
    {"retry_delay": -0.5},
    {"retry_backoff": 0.5},
    {"job_timeout": 0},
    {"circuit_failure_threshold": 0},
    {"circuit_window": 0},
    {"circuit_cooldown": -1},
    {"eta_window": 0},
    {"tick_interval": 0},
])
def test_invalid_settings(kwargs) -> None:
    with pytest.raises(ValueError):
        ReplicationSettings(**kwargs)


@pytest.mark.unit
def test_settings_are_frozen() -> None:
    settings = ReplicationSettings()
    with pytest.raises(dataclasses.FrozenInstanceError):
        settings.max_retries = 5  # type: ignore[misc]


@pytest.mark.unit
def test_profile_fields() -> None:
    profile = ReplicationProfile(name="share", source=r"\\server\share", destination=r"D:\Backup")
    assert profile.name == "share"
    assert profile.destination == r"D:\Backup"
