"""Diagnostics: typed, severity-ranked problem reports gathered while operating on providers."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional, Union

UNMANAGED = "unmanaged"


class Severity(enum.IntEnum):
    """How serious a diagnostic is."""

    IGNORE = 0
    WARNING = 1
    ERROR = 2
    PANIC = 3


class DiagnosticType(enum.Enum):
    """What area of the system a diagnostic originates from."""

    UNKNOWN = "Unknown"
    RESOLVING = "Resolving"
    ACCESS = "Access"
    THROTTLE = "Throttle"
    DATABASE = "Database"
    SCHEMA = "Schema"
    INTERNAL = "Internal"
    USER = "User"

    def __str__(self) -> str:
        return self.value


@dataclass
class Diagnostic:
    """A single problem report, optionally wrapping the exception that caused it."""

    type: DiagnosticType
    severity: Severity = Severity.ERROR
    summary: str = ""
    details: str = ""
    resource: str = ""
    resource_ids: tuple[str, ...] = ()
    err: Optional[BaseException] = None
    redacted_form: Optional["Diagnostic"] = None

    def error(self) -> str:
        """The error text: the wrapped exception's message, else the summary."""
        if self.err is not None:
            return str(self.err)
        return self.summary

    def __str__(self) -> str:
        return self.error()


@dataclass
class SentryDiagnostic:
    """A diagnostic carrying extra reporting tags and an ignore flag."""

    diagnostic: Union[Diagnostic, "SentryDiagnostic"]
    tags: dict[str, str] = field(default_factory=dict)
    ignore: bool = False

    def __getattr__(self, name: str):
        if name.startswith("__") or name == "diagnostic":
            raise AttributeError(name)
        return getattr(self.diagnostic, name)

    def __str__(self) -> str:
        return self.diagnostic.error()

    def redacted(self) -> "SentryDiagnostic":
        """Return a copy wrapping the redacted form of the inner diagnostic, if any."""
        replacement = getattr(self.diagnostic, "redacted_form", None)
        if replacement is None:
            return self
        return SentryDiagnostic(replacement, self.tags, self.ignore)

    def is_sentry_diagnostic(self) -> tuple[bool, dict[str, str], bool]:
        return True, self.tags, self.ignore


AnyDiagnostic = Union[Diagnostic, SentryDiagnostic]


class Diagnostics(list):
    """An ordered collection of diagnostics."""

    def add(self, other) -> "Diagnostics":
        """Return a new collection with ``other`` appended.

        ``other`` may be a diagnostic, an iterable of diagnostics, an exception or None.
        """
        result = Diagnostics(self)
        if other is None:
            return result
        if isinstance(other, (Diagnostic, SentryDiagnostic)):
            result.append(other)
        elif isinstance(other, BaseException):
            result.extend(from_error(other, DiagnosticType.UNKNOWN))
        else:
            result.extend(other)
        return result

    def has_errors(self) -> bool:
        return any(d.severity >= Severity.ERROR for d in self)

    def has_diags(self) -> bool:
        return len(self) > 0

    def errors(self) -> int:
        """Number of diagnostics with error or panic severity."""
        return sum(1 for d in self if d.severity >= Severity.ERROR)

    def by_severity(self, *args: Severity) -> "Diagnostics":
        wanted = set(args)
        return Diagnostics(d for d in self if d.severity in wanted)


def from_error(
    err: Optional[BaseException],
    diag_type: DiagnosticType,
    severity: Severity = Severity.ERROR,
    summary: Optional[str] = None,
    details: str = "",
    resource: str = "",
) -> Diagnostics:
    """Build a one-element collection describing ``err``.

    A given summary is prefixed to the error text. Nothing is produced when there
    is neither an error nor a summary.
    """
    if err is None and not summary:
        return Diagnostics()
    if summary and err is not None:
        text = f"{summary}: {err}"
    elif summary:
        text = summary
    else:
        text = str(err)
    return Diagnostics(
        [
            Diagnostic(
                type=diag_type,
                severity=severity,
                summary=text,
                details=details,
                resource=resource,
                err=err,
            )
        ]
    )


def _convert(
    diags: Iterable[AnyDiagnostic],
    handle: Callable[[AnyDiagnostic], Optional[SentryDiagnostic]],
) -> Diagnostics:
    return Diagnostics(sd for sd in map(handle, diags) if sd is not None)


def convert_to_configure_diags(diags: Iterable[AnyDiagnostic]) -> Diagnostics:
    """Tag diagnostics raised while configuring a provider."""
    return _convert(
        diags,
        lambda d: SentryDiagnostic(
            diagnostic=d,
            tags={"source": "configure"},
            ignore=d.type == DiagnosticType.ACCESS,
        ),
    )


def convert_to_fetch_diags(
    diags: Iterable[AnyDiagnostic],
    provider_name: str,
    provider_version: str,
    allow_unmanaged: bool = False,
) -> Diagnostics:
    """Tag diagnostics raised while fetching resources from a provider."""
    return _convert(
        diags,
        lambda d: SentryDiagnostic(
            diagnostic=d,
            tags={
                "provider": provider_name,
                "provider_version": provider_version,
                "resource": d.resource,
            },
            ignore=not allow_unmanaged and provider_version == UNMANAGED,
        ),
    )