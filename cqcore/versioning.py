"""Version parsing and comparison, and the recorded state of installed providers."""

from __future__ import annotations

import functools
import json
import re
from dataclasses import dataclass, field
from typing import Optional, Union

from .registry import Provider

_NUM = r"v?([0-9]+(\.[0-9]+)*?)"
_PART = r"[0-9A-Za-z\-~]"
_META = rf"(\+({_PART}+(\.{_PART}+)*))?"
_LOOSE = re.compile(
    r"^\s*" + _NUM
    + rf"(-([0-9]+{_PART}*(\.{_PART}+)*)|(-?([A-Za-z\-~]+{_PART}*(\.{_PART}+)*)))?"
    + _META + r"?\s*$"
)
_STRICT = re.compile(
    r"^\s*" + _NUM
    + rf"(-([0-9]+{_PART}*(\.{_PART}+)*)|(-([A-Za-z\-~]+{_PART}*(\.{_PART}+)*)))?"
    + _META + r"?\s*$"
)


class VersionError(ValueError):
    """Raised for text that is not a valid version."""


def _compare_pre_part(a: str, b: str) -> int:
    a_num, b_num = a.isdigit(), b.isdigit()
    if a_num and b_num:
        x, y = int(a), int(b)
    elif a_num:
        return -1
    elif b_num:
        return 1
    else:
        x, y = a, b
    return (x > y) - (x < y)


def _compare_prereleases(a: str, b: str) -> int:
    for pa, pb in zip(a.split("."), b.split(".")):
        result = _compare_pre_part(pa, pb)
        if result:
            return result
    la, lb = len(a.split(".")), len(b.split("."))
    return (la > lb) - (la < lb)


@functools.total_ordering
class Version:
    """A parsed version: numeric segments, prerelease and build metadata."""

    __slots__ = ("_segments", "_pre", "_meta", "_original")

    def __init__(self, segments, pre: str = "", meta: str = "", original: Optional[str] = None) -> None:
        segs = list(segments)
        segs.extend([0] * (3 - len(segs)))
        self._segments = tuple(segs)
        self._pre = pre
        self._meta = meta
        self._original = original if original is not None else self._render()

    def segments(self) -> list[int]:
        return list(self._segments)

    def prerelease(self) -> str:
        return self._pre

    def metadata(self) -> str:
        return self._meta

    def original(self) -> str:
        return self._original

    def _render(self) -> str:
        text = ".".join(str(s) for s in self._segments)
        if self._pre:
            text += f"-{self._pre}"
        if self._meta:
            text += f"+{self._meta}"
        return text

    def compare(self, other: "Version") -> int:
        """Return -1, 0 or 1; build metadata is ignored."""
        width = max(len(self._segments), len(other._segments))
        a = self._segments + (0,) * (width - len(self._segments))
        b = other._segments + (0,) * (width - len(other._segments))
        if a != b:
            return -1 if a < b else 1
        if self._pre == other._pre:
            return 0
        if not self._pre:
            return 1
        if not other._pre:
            return -1
        return _compare_prereleases(self._pre, other._pre)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self.compare(other) == 0

    def __lt__(self, other: "Version") -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self.compare(other) < 0

    def __hash__(self) -> int:
        segs = list(self._segments)
        while segs and segs[-1] == 0:
            segs.pop()
        return hash((tuple(segs), self._pre))

    def __str__(self) -> str:
        return self._render()

    def __repr__(self) -> str:
        return f"Version({self._original!r})"


def _parse(text: str, pattern: re.Pattern) -> Version:
    match = pattern.match(text)
    if match is None:
        raise VersionError(f"Malformed version: {text}")
    segments = [int(s) for s in match.group(1).split(".")]
    pre = match.group(7) or match.group(4) or ""
    meta = match.group(10) or ""
    return Version(segments, pre, meta, text)


def parse_version(text: str) -> Version:
    """Parse a version leniently; a prerelease may follow the numbers without a dash."""
    return _parse(text, _LOOSE)


def parse_semver(text: str) -> Version:
    """Parse a semantic version; a prerelease must be introduced with a dash."""
    return _parse(text, _STRICT)


@dataclass
class ProviderState:
    """What is recorded about an installed provider."""

    source: str
    name: str
    version: str
    v_major: int = 0
    v_minor: int = 0
    v_patch: int = 0
    v_pre: str = ""
    v_meta: str = ""
    tables: dict[str, list[str]] = field(default_factory=dict)
    signatures: dict[str, str] = field(default_factory=dict)
    parsed_version: Optional[Version] = None

    def registry(self) -> Provider:
        return Provider(name=self.name, version=self.version, source=self.source)

    def tables_json(self) -> bytes:
        return json.dumps(self.tables).encode()

    def signatures_json(self) -> bytes:
        return json.dumps(self.signatures).encode()

    def load_json(self, tables: Union[bytes, bytearray], signatures: Union[bytes, bytearray]) -> None:
        """Fill tables and signatures from their stored JSON encodings."""
        for value in (tables, signatures):
            if not isinstance(value, (bytes, bytearray)):
                raise TypeError("type assertion to bytes failed")
        self.tables = json.loads(tables) or {}
        self.signatures = json.loads(signatures) or {}


def provider_from_registry(provider: Provider) -> ProviderState:
    """Build provider state from a registry provider, splitting out its version parts."""
    state = ProviderState(source=provider.source, name=provider.name, version=provider.version)
    if provider.version:
        try:
            ver = parse_version(provider.version)
        except VersionError:
            return state
        state.v_major, state.v_minor, state.v_patch = ver.segments()[:3]
        state.v_pre, state.v_meta, state.parsed_version = ver.prerelease(), ver.metadata(), ver
    return state