"""Checks for provider updates and helpers around provider schemas."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Protocol

from .diagnostics import Diagnostics, DiagnosticType, from_error
from .registry import LATEST_VERSION, Provider, ProviderBinary

log = logging.getLogger(__name__)


class _Registry(Protocol):
    def get(self, provider_name: str, provider_version: str) -> ProviderBinary: ...

    def check_update(self, provider: Provider) -> str: ...


class _Manager(Protocol):
    def is_reattach_provider(self, provider: Provider) -> bool: ...


@dataclass(frozen=True)
class AvailableUpdate:
    """A newer version available for a provider."""

    name: str
    current_version: str
    available_version: str


def check_available_updates(
    registry: _Registry, providers: Iterable[Provider]
) -> tuple[list[AvailableUpdate], Diagnostics]:
    """Find providers with newer versions available.

    A provider requested as ``latest`` is compared using the newest version on disk;
    it is skipped when none is present. Failed checks are reported as diagnostics.
    """
    diags = Diagnostics()
    updates: list[AvailableUpdate] = []
    for provider in providers:
        version = provider.version
        if provider.version == LATEST_VERSION:
            try:
                version = registry.get(provider.name, provider.version).version
            except Exception:  # nothing downloaded yet
                continue
        log.info("checking update for provider %s@%s", provider.name, version)
        try:
            update_version = registry.check_update(provider)
        except Exception as err:  # the registry may fail in any way
            log.error("failed to check update for provider %s: %s", provider.name, err)
            diags = diags.add(from_error(err, DiagnosticType.INTERNAL))
            update_version = ""
        if not update_version or update_version == version:
            log.debug("no update found for provider %s@%s", provider.name, version)
            continue
        log.info("update available for provider %s: %s", provider.name, update_version)
        updates.append(AvailableUpdate(provider.name, version, update_version))
    return updates, diags


def managed_providers(manager: _Manager, providers: Iterable[Provider]) -> list[Provider]:
    """Providers that are not served by reattached plugins."""
    return [p for p in providers if not manager.is_reattach_provider(p)]


def normalize_schema_version(schema_version: str, requested_version: str) -> str:
    """The version a provider schema reports, with a ``v`` prefix.

    A schema that reports no version takes the requested one.
    """
    if not schema_version:
        return requested_version
    if not schema_version.startswith("v"):
        return f"v{schema_version}"
    return schema_version