"""Provider identities and provider name parsing."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

LATEST_VERSION = "latest"
DEFAULT_ORGANIZATION = "cloudquery"


@dataclass(frozen=True)
class Provider:
    """A provider by name, version and source organization."""

    name: str
    version: str = ""
    source: str = ""

    def __str__(self) -> str:
        return f"{self.name}@{self.version}"


@dataclass(frozen=True)
class ProviderBinary:
    """A provider together with the path of its executable."""

    provider: Provider
    file_path: str = ""

    @property
    def name(self) -> str:
        return self.provider.name

    @property
    def version(self) -> str:
        return self.provider.version

    @property
    def source(self) -> str:
        return self.provider.source


class Providers(list):
    """A list of providers with lookup by name."""

    def get(self, name: str) -> Optional[Provider]:
        return next((p for p in self if p.name == name), None)

    def get_many(self, *args: str) -> list[Provider]:
        return [p for p in map(self.get, args) if p is not None]

    def __str__(self) -> str:
        return "[" + ",".join(str(p) for p in self) + "]"


@dataclass
class RequiredProvider:
    """A provider as requested in configuration."""

    name: str
    source: Optional[str] = None
    version: str = ""


def parse_provider_name(name: str) -> tuple[str, str]:
    """Split ``[org/]name`` into organization and provider name.

    The organization defaults to the default organization and is lower-cased.
    """
    parts = name.split("/")
    if len(parts) == 2:
        return parts[0].lower(), parts[1]
    if len(parts) == 1:
        return DEFAULT_ORGANIZATION, name
    raise ValueError(f'invalid provider name "{name}"')


def provider_repo_name(name: str) -> str:
    return f"cq-provider-{name}"


def parse_provider_source(requested: RequiredProvider) -> tuple[str, str]:
    """Resolve the organization and name of a requested provider."""
    if not requested.source:
        source = requested.name
    else:
        source = requested.source
        if "/" not in source:
            source = f"{source}/{requested.name}"
    return parse_provider_name(source)