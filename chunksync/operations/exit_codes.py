"""Decoding of copy executor exit codes.

The executor reports a small bitmask:

    1   one or more files were copied
    2   extra files or directories exist in the destination
    4   mismatched files or directories were detected
    8   some files or directories could not be copied
    16  fatal error, nothing was copied

The severity of a combined code is that of its most severe bit. A negative
code (the process was killed by a signal) or a code with bits outside the
mask is treated as fatal.
"""

from chunksync.models import ExitClassification, ExitSeverity

FILES_COPIED = 0x01
EXTRAS_PRESENT = 0x02
MISMATCHES = 0x04
COPY_FAILURES = 0x08
FATAL = 0x10

KNOWN_BITS = FILES_COPIED | EXTRAS_PRESENT | MISMATCHES | COPY_FAILURES | FATAL


def classify_exit_code(exit_code: int) -> ExitClassification:
    """Decode an executor exit code into an ExitClassification.

    Args:
        exit_code: Raw process exit code.

    Returns:
        ExitClassification carrying the severity and one flag per bit.
    """
    if exit_code < 0 or exit_code & ~KNOWN_BITS:
        return ExitClassification(
            exit_code=exit_code,
            severity=ExitSeverity.FATAL,
            fatal_error=True,
            detail=f"unexpected exit code {exit_code}",
        )

    copied = bool(exit_code & FILES_COPIED)
    extras = bool(exit_code & EXTRAS_PRESENT)
    mismatches = bool(exit_code & MISMATCHES)
    failures = bool(exit_code & COPY_FAILURES)
    fatal = bool(exit_code & FATAL)

    if fatal:
        severity = ExitSeverity.FATAL
    elif failures:
        severity = ExitSeverity.ERROR
    elif mismatches:
        severity = ExitSeverity.WARNING
    else:
        severity = ExitSeverity.SUCCESS

    return ExitClassification(
        exit_code=exit_code,
        severity=severity,
        copied_files=copied,
        extras_present=extras,
        mismatches_detected=mismatches,
        copy_failures=failures,
        fatal_error=fatal,
        detail=describe_exit_code(exit_code),
    )


def describe_exit_code(exit_code: int) -> str:
    """Return a short human-readable description of an exit code."""
    if exit_code == 0:
        return "no changes"
    parts = []
    if exit_code & FILES_COPIED:
        parts.append("files copied")
    if exit_code & EXTRAS_PRESENT:
        parts.append("extras in destination")
    if exit_code & MISMATCHES:
        parts.append("mismatches detected")
    if exit_code & COPY_FAILURES:
        parts.append("some items failed to copy")
    if exit_code & FATAL:
        parts.append("fatal error")
    return ", ".join(parts)
