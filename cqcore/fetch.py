"""Results of fetching resources from providers: statuses, summaries and progress updates."""

from __future__ import annotations

import enum
import uuid
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Optional

from .diagnostics import Diagnostics


class FetchStatus(enum.IntEnum):
    """Overall outcome of fetching from one provider."""

    FAILED = 1
    CONFIGURE_FAILED = 2
    CANCELED = 3
    FINISHED = 4
    PARTIAL = 5

    def __str__(self) -> str:
        return _STATUS_NAMES.get(self, "unknown")


_STATUS_NAMES = {
    FetchStatus.FAILED: "failed",
    FetchStatus.CANCELED: "canceled",
    FetchStatus.FINISHED: "successful",
    FetchStatus.PARTIAL: "partial",
    FetchStatus.CONFIGURE_FAILED: "configure_failed",
}


def _round_seconds(seconds: float) -> float:
    return round(seconds * 100) / 100


def _summarize_diagnostics(diags: Diagnostics) -> dict[str, int]:
    counts = Counter(d.severity.name.lower() for d in diags)
    return {"total": len(diags), **counts}


@dataclass
class ResourceFetchSummary:
    """Outcome of fetching one resource; ``duration`` is in seconds."""

    status: str = ""
    resource_count: int = 0
    diagnostics: Diagnostics = field(default_factory=Diagnostics)
    telemetry_events: list[Any] = field(default_factory=list)
    duration: float = 0.0


@dataclass
class ProviderFetchSummary:
    """Outcome of fetching from one provider; ``duration`` is in seconds."""

    name: str
    alias: str = ""
    version: str = ""
    total_resources_fetched: int = 0
    fetched_resources: dict[str, ResourceFetchSummary] = field(default_factory=dict)
    status: FetchStatus = FetchStatus.FINISHED
    duration: float = 0.0

    def __str__(self) -> str:
        if self.alias:
            return f"{self.name}({self.alias})"
        return self.name

    def resources(self) -> list[str]:
        return list(self.fetched_resources)

    def diagnostics(self) -> Diagnostics:
        """All diagnostics reported by the fetched resources."""
        result = Diagnostics()
        for summary in self.fetched_resources.values():
            result.extend(summary.diagnostics)
        return result

    def properties(self) -> dict[str, Any]:
        """Analytics properties describing this fetch."""
        return {
            "fetch_provider": self.name,
            "fetch_provider_version": self.version,
            "fetch_resources": self.resources(),
            "fetch_total_resources_count": self.total_resources_fetched,
            "fetch_resources_durations": {
                name: _round_seconds(r.duration) for name, r in self.fetched_resources.items()
            },
            "fetch_duration": _round_seconds(self.duration),
            "fetch_diags": _summarize_diagnostics(self.diagnostics()),
            "fetch_status": str(self.status),
        }


@dataclass
class FetchUpdate:
    """A progress report received while a provider fetches."""

    name: str
    alias: str = ""
    version: str = ""
    finished_resources: dict[str, bool] = field(default_factory=dict)
    resource_count: int = 0
    error: str = ""
    diagnostic_count: int = 0

    def all_done(self) -> bool:
        return all(self.finished_resources.values())

    def done_count(self) -> int:
        return sum(1 for done in self.finished_resources.values() if done)


@dataclass
class FetchResponse:
    """Summaries of every provider taking part in one fetch."""

    fetch_id: uuid.UUID = field(default_factory=uuid.uuid1)
    provider_fetch_summary: dict[str, ProviderFetchSummary] = field(default_factory=dict)
    total_fetched: int = 0
    duration: float = 0.0
    telemetry_events: list[Any] = field(default_factory=list)

    def has_errors(self) -> bool:
        return any(p.diagnostics().has_errors() for p in self.provider_fetch_summary.values())

    def add(self, summary: Optional[ProviderFetchSummary]) -> None:
        """Record a provider's summary under its display name and count its resources."""
        if summary is None:
            return
        self.provider_fetch_summary[str(summary)] = summary
        self.total_fetched += summary.total_resources_fetched