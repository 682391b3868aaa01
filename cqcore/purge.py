"""Purging of stale provider data: the result and the queries it relies on."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Mapping, Optional, Union

_DRY_RUN_SQL = (
    'SELECT COUNT(*) FROM "{table}" WHERE '
    "(extract(epoch from (cq_meta->>'last_updated')::timestamp) < $1)"
)


@dataclass
class PurgeProviderDataResult:
    """Resources affected by a purge; counts are only gathered in dry-run mode."""

    total_affected: int = 0
    affected_resources: dict[str, int] = field(default_factory=dict)

    def resources(self) -> list[str]:
        """Names of affected resources, sorted."""
        return sorted(self.affected_resources)

    def merge(self, affected: Mapping[str, int]) -> None:
        """Add one provider's affected resource counts to the result."""
        for name, count in affected.items():
            self.total_affected += count
            self.affected_resources[name] = count


def dry_run_query(table_name: str, last_update_time: datetime) -> tuple[str, list[int]]:
    """SQL and arguments counting rows of ``table_name`` last updated before the given time."""
    quoted = table_name.replace('"', '""')
    return _DRY_RUN_SQL.format(table=quoted), [int(last_update_time.timestamp())]


def last_update_cutoff(
    now: Optional[datetime], last_update: Union[timedelta, float, int]
) -> datetime:
    """The UTC time before which data counts as stale."""
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    else:
        now = now.astimezone(timezone.utc)
    if not isinstance(last_update, timedelta):
        last_update = timedelta(seconds=last_update)
    return now - last_update