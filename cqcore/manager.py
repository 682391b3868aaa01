"""Lifecycle of provider plugins: download, creation, reuse and shutdown."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping, Optional, Protocol, Sequence

from .diagnostics import UNMANAGED, Diagnostics, DiagnosticType, Severity, from_error
from .registry import Provider, ProviderBinary, parse_provider_name

log = logging.getLogger(__name__)

# Protocol version reported by plugins that were started outside of the manager.
UNMANAGED_PROTOCOL_VERSION = -1


class _Registry(Protocol):
    def get(self, provider_name: str, provider_version: str) -> ProviderBinary: ...

    def check_update(self, provider: Provider) -> str: ...

    def download(self, provider: Provider, no_verify: bool) -> ProviderBinary: ...


@dataclass
class Plugin:
    """A running provider plugin.

    ``provider`` is the client used to talk to it. ``process`` is the process the
    manager started for it; plugins attached to an already running process have none.
    """

    name: str
    version: str
    provider: Any = None
    protocol_version: int = 0
    process: Optional[Any] = None

    @property
    def unmanaged(self) -> bool:
        return self.version == UNMANAGED

    def close(self) -> None:
        """Stop the plugin's process, if the manager started one."""
        if self.process is None:
            return
        if self.process.poll() is None:
            self.process.kill()
            self.process.wait()


Launcher = Callable[[ProviderBinary, str, Sequence[str]], Plugin]


class Plugins(dict):
    """Plugins keyed by the name they were registered under."""

    def get(self, provider: Provider, alias: str = "") -> Optional[Plugin]:  # type: ignore[override]
        """Find the plugin serving ``provider`` under ``alias``, or None."""
        for key, plugin in self.items():
            if plugin.version == UNMANAGED and key == provider.name:
                return plugin
            if not alias and (
                key == str(provider) or plugin.name == f"{provider.name}_{provider.name}"
            ):
                return plugin
            if plugin.name == f"{provider}_{alias}":
                return plugin
        return None


@dataclass
class DownloadResult:
    """Provider binaries fetched by a download."""

    downloaded: list[Optional[ProviderBinary]] = field(default_factory=list)


class Manager:
    """Creates, tracks and stops provider plugins.

    ``reattach`` maps provider names to clients of providers that are already
    running; they are used as they are and never stopped. ``launcher`` starts a
    plugin from a downloaded binary, an alias and extra environment variables.
    """

    def __init__(
        self,
        registry: _Registry,
        reattach: Optional[Mapping[str, Any]] = None,
        launcher: Optional[Launcher] = None,
    ) -> None:
        self.registry = registry
        self._launcher = launcher
        self._clients = Plugins()
        for name, client in (reattach or {}).items():
            log.debug("reattaching unmanaged plugin %s", name)
            self._clients[name] = Plugin(
                name=f"{name}_{name}",
                version=UNMANAGED,
                provider=client,
                protocol_version=UNMANAGED_PROTOCOL_VERSION,
            )

    @property
    def plugins(self) -> Plugins:
        return self._clients

    def download_providers(
        self, providers: Iterable[Provider], no_verify: bool
    ) -> list[Optional[ProviderBinary]]:
        """Download each provider; reattached providers are skipped and give None."""
        downloaded: list[Optional[ProviderBinary]] = []
        for provider in providers:
            if self.is_reattach_provider(provider):
                log.info("skipping provider %s download, using reattach instead", provider.name)
                downloaded.append(None)
                continue
            log.info("downloading provider %s@%s", provider.name, provider.version)
            downloaded.append(self.registry.download(provider, no_verify))
        return downloaded

    def create_plugin(
        self, provider: Provider, alias: str = "", env: Sequence[str] = ()
    ) -> Plugin:
        """Return an existing plugin for the provider or launch a new one."""
        _, provider_name = parse_provider_name(provider.name)
        existing = self._clients.get(provider, alias)
        if existing is not None:
            log.debug("using existing plugin %s alias=%s", provider, alias)
            return existing
        log.info("plugin %s alias=%s doesn't exist, creating...", provider_name, alias)
        try:
            binary = self.registry.get(provider.name, provider.version)
        except Exception:
            raise LookupError(
                f"no such provider {provider_name}. plugin might be missing from "
                "directory or wasn't downloaded"
            ) from None
        if self._launcher is None:
            raise RuntimeError("no plugin launcher configured")
        plugin = self._launcher(binary, alias, list(env))
        self.register(plugin)
        return plugin

    def is_reattach_provider(self, provider: Provider) -> bool:
        return provider.name in self._clients

    def register(self, plugin: Plugin) -> None:
        """Track a plugin under its name."""
        self._clients[plugin.name] = plugin

    def close_plugin(self, plugin: Plugin) -> None:
        """Stop a plugin and forget it; unmanaged plugins are left running."""
        if plugin.unmanaged:
            log.warning("not closing unmanaged provider %s", plugin.name)
            return
        try:
            _, name = parse_provider_name(plugin.name)
        except ValueError:
            log.warning("failed to kill provider %s", plugin.name)
            return
        client = self._clients.pop(name, None)
        if client is None:
            log.warning("failed to kill provider %s: client does not exist", plugin.name)
            return
        client.close()

    def shutdown(self) -> None:
        """Stop every managed plugin and forget all plugins."""
        for plugin in list(self._clients.values()):
            self.close_plugin(plugin)
        self._clients = Plugins()


def download(
    manager: Manager, providers: Sequence[Provider], no_verify: bool
) -> tuple[Optional[DownloadResult], Diagnostics]:
    """Download providers through the manager, reporting failure as diagnostics."""
    log.info("downloading providers %s", [str(p) for p in providers])
    start = time.monotonic()
    try:
        downloaded = manager.download_providers(providers, no_verify)
    except Exception as err:  # any registry failure is reported to the caller
        return None, from_error(
            err,
            DiagnosticType.INTERNAL,
            severity=Severity.ERROR,
            summary="failed to download providers",
        )
    log.info("providers downloaded successfully in %.2fs", time.monotonic() - start)
    return DownloadResult(downloaded), Diagnostics()