"""Checks whether a newer release of the core is available, at most once per period."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Optional, Union

from .versioning import Version, parse_semver

log = logging.getLogger(__name__)

DEVELOPMENT_VERSION = "development"
GITHUB_ORG = "cloudquery"
REPO_NAME = "cloudquery"
LAST_UPDATE_CHECK_FILE = "last-update-check"
# Seconds that must pass between two checks against the release host.
UPDATE_CHECK_PERIOD = 23 * 60 * 60

LatestReleaseFetcher = Callable[[str, str], str]


def _read_or_create(path: Path, default: str) -> str:
    """Read the check file, creating it with ``default`` content if it does not exist."""
    if not path.exists():
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(default, encoding="utf-8")
    return path.read_text(encoding="utf-8")


def _parse_int(text: str) -> int:
    try:
        return int(text)
    except ValueError:
        return 0


def check_core_update(
    data_dir: Union[str, Path],
    now_unix: int,
    period: int,
    current_version: str,
    get_latest_release: LatestReleaseFetcher,
) -> Optional[Version]:
    """Return a newer available core version, or None.

    The time and version last seen are kept in a file in ``data_dir`` so that the
    release host is asked at most once every ``period`` seconds. A file whose content
    starts with ``disable`` turns checking off. ``get_latest_release(owner, repo)``
    returns the tag of the latest release.

    Raises VersionError when the current or released version is not a semantic
    version, OSError when the check file cannot be read or written, and whatever
    ``get_latest_release`` raises.
    """
    if current_version == DEVELOPMENT_VERSION:
        return None

    current = parse_semver(current_version)

    path = Path(data_dir) / LAST_UPDATE_CHECK_FILE
    content = _read_or_create(path, f"{now_unix - period - 1} 0.0.0").strip()
    if content.startswith("disable"):
        return None

    fields = content.split()
    last_time = 0
    last_version = parse_semver("0.0.0")
    if len(fields) >= 2:
        last_time = _parse_int(fields[0])
        try:
            last_version = parse_semver(fields[1])
        except ValueError:
            log.debug("ignoring malformed version %r in %s", fields[1], path)

    if current < last_version:
        return last_version

    if now_unix - last_time > period:
        tag = get_latest_release(GITHUB_ORG, REPO_NAME)
        newest = parse_semver(tag)
        try:
            path.write_text(f"{now_unix} {newest}", encoding="utf-8")
        except OSError as err:
            log.debug("failed to record update check in %s: %s", path, err)
        if current < newest:
            return newest
    return None