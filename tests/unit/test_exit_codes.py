"""Unit tests for exit code classification."""

import pytest

from chunksync.models import ExitSeverity
from chunksync.operations import classify_exit_code, describe_exit_code


@pytest.mark.unit
@pytest.mark.parametrize("exit_code,expected", [
    (0, ExitSeverity.SUCCESS),
    (1, ExitSeverity.SUCCESS),
    (2, ExitSeverity.SUCCESS),
    (3, ExitSeverity.SUCCESS),
    (4, ExitSeverity.WARNING),
    (5, ExitSeverity.WARNING),
    (7, ExitSeverity.WARNING),
    (8, ExitSeverity.ERROR),
    (9, ExitSeverity.ERROR),
    (12, ExitSeverity.ERROR),
    (15, ExitSeverity.ERROR),
    (16, ExitSeverity.FATAL),
    (24, ExitSeverity.FATAL),
    (31, ExitSeverity.FATAL),
])
def test_severity_is_highest_bit(exit_code: int, expected: ExitSeverity) -> None:
    assert classify_exit_code(exit_code).severity == expected


@pytest.mark.unit
@pytest.mark.parametrize("exit_code", [-1, -9, 32, 33, 255])
def test_unknown_codes_are_fatal(exit_code: int) -> None:
    classification = classify_exit_code(exit_code)

    assert classification.severity == ExitSeverity.FATAL
    assert classification.fatal_error
    assert classification.is_retryable
    assert "unexpected exit code" in classification.detail


@pytest.mark.unit
def test_flags_decoded_individually() -> None:
    classification = classify_exit_code(13)

    assert classification.exit_code == 13
    assert classification.copied_files
    assert not classification.extras_present
    assert classification.mismatches_detected
    assert classification.copy_failures
    assert not classification.fatal_error


@pytest.mark.unit
@pytest.mark.parametrize("exit_code,retryable", [
    (0, False), (3, False), (4, False), (8, True), (16, True),
])
def test_only_failures_are_retryable(exit_code: int, retryable: bool) -> None:
    assert classify_exit_code(exit_code).is_retryable is retryable


@pytest.mark.unit
def test_describe_exit_code() -> None:
    assert describe_exit_code(0) == "no changes"
    assert describe_exit_code(1) == "files copied"
    assert describe_exit_code(3) == "files copied, extras in destination"
    assert describe_exit_code(24) == "some items failed to copy, fatal error"
    assert classify_exit_code(4).detail == "mismatches detected"
