"""Error classification and filtering of diagnostics that should not be reported."""

from __future__ import annotations

import asyncio
import enum
import re
import socket
from typing import Iterator, Optional

from .diagnostics import (
    Diagnostic,
    Diagnostics,
    DiagnosticType,
    SentryDiagnostic,
    Severity,
    from_error,
)


class ErrorClass(str, enum.Enum):
    """Class of an error; classified errors are not reported."""

    NONE = ""
    CANCELLATION = "cancelled"
    AUTH = "auth"
    CONNECTION = "connection"
    DATABASE = "database"


class PgError(Exception):
    """A PostgreSQL server error carrying an SQLSTATE code."""

    def __init__(self, code: str, message: str = "") -> None:
        text = f"{message} (SQLSTATE {code})" if message else f"(SQLSTATE {code})"
        super().__init__(text)
        self.code = code
        self.message = message


_SQLSTATE = re.compile(r"\(SQLSTATE ([0-9A-Z]{5})\)")
_CANCELED_TEXT = "context canceled"
_IGNORED_PG_CLASSES = frozenset({"08", "28", "3D", "53", "57"})
_CANCEL_TYPES = (asyncio.CancelledError, TimeoutError, asyncio.TimeoutError)
_DIAL_ERRORS = (ConnectionRefusedError, socket.gaierror)


def _chain(err) -> Iterator[object]:
    """Walk an error and everything it wraps."""
    seen: set[int] = set()
    current = err
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        if isinstance(current, SentryDiagnostic):
            current = current.diagnostic
        elif isinstance(current, Diagnostic):
            current = current.err
        elif isinstance(current, BaseException):
            if current.__cause__ is not None:
                current = current.__cause__
            elif not current.__suppress_context__:
                current = current.__context__
            else:
                current = None
        else:
            current = None


def _message(err) -> str:
    if isinstance(err, (Diagnostic, SentryDiagnostic)):
        return err.error()
    return str(err)


def is_cancellation(err) -> bool:
    """Whether the error is a cancellation or a deadline being exceeded."""
    return any(isinstance(e, _CANCEL_TYPES) for e in _chain(err))


def cancellation_diag(err: BaseException) -> Diagnostics:
    return from_error(err, DiagnosticType.USER, summary="operation was canceled by user")


def should_ignore_pg_code(code: Optional[str]) -> bool:
    """Whether an SQLSTATE belongs to a class that is an environment problem, not a bug."""
    return bool(code) and len(code) >= 2 and code[:2] in _IGNORED_PG_CLASSES


def classify_error(err) -> ErrorClass:
    """Classify an error by its type and contents."""
    chain = list(_chain(err))
    if any(isinstance(e, asyncio.CancelledError) for e in chain) or _CANCELED_TEXT in _message(err):
        return ErrorClass.CANCELLATION
    if any(isinstance(e, _DIAL_ERRORS) for e in chain):
        return ErrorClass.CONNECTION
    pg_code = next((e.code for e in chain if isinstance(e, PgError)), "")
    if should_ignore_pg_code(pg_code):
        return ErrorClass.DATABASE
    return ErrorClass.NONE


def should_ignore_diag(d) -> bool:
    """Whether a diagnostic is of a kind that should not be reported."""
    if (
        d.severity == Severity.IGNORE
        or (d.severity == Severity.WARNING and d.type in (DiagnosticType.ACCESS, DiagnosticType.THROTTLE))
        or d.type == DiagnosticType.USER
    ):
        return True
    if d.type == DiagnosticType.DATABASE:
        match = _SQLSTATE.search(d.error())
        if match and should_ignore_pg_code(match.group(1)):
            return True
        if classify_error(d) is ErrorClass.CONNECTION:
            return True
    return False


def is_sentry_diagnostic(d) -> tuple[bool, Optional[dict[str, str]], bool]:
    check = getattr(d, "is_sentry_diagnostic", None)
    if check is None:
        return False, None, False
    return check()