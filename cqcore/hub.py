"""Local store of provider binaries: lookup, update checks, download and verification."""

from __future__ import annotations

import hashlib
import logging
import os
import platform
import sys
import urllib.request
from typing import Callable, Optional, Protocol

from .registry import (
    DEFAULT_ORGANIZATION,
    LATEST_VERSION,
    Provider,
    ProviderBinary,
    provider_repo_name,
)
from .versioning import VersionError, parse_version

log = logging.getLogger(__name__)

CHECKSUM_SEPARATOR = "  "

STATUS_IN_PROGRESS = "in_progress"
STATUS_OK = "ok"
STATUS_WARN = "warn"
STATUS_ERROR = "error"

_ARCHITECTURES = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "i386": "386",
    "i686": "386",
    "x86": "386",
    "armv7l": "arm",
    "armv6l": "arm",
}

ProgressCallback = Callable[[int, int], None]
Downloader = Callable[[str, str, Optional[ProgressCallback]], None]
SignatureValidator = Callable[[str, str], None]


class _ReleaseSource(Protocol):
    def get_latest_provider_release(self, organization: str, provider_name: str) -> str: ...

    def is_provider_registered(self, organization: str, provider_name: str) -> bool: ...


class _ProgressUpdater(Protocol):
    def add(self, name: str, display_name: str, version: str, total: int) -> None: ...

    def update(self, name: str, status: str, message: str, increment: int) -> None: ...


class ProviderMissingError(LookupError):
    """Raised when a provider binary is not present locally."""


def _goos() -> str:
    if sys.platform.startswith("win"):
        return "windows"
    if sys.platform.startswith("linux"):
        return "linux"
    if sys.platform.startswith("freebsd"):
        return "freebsd"
    return sys.platform


def _goarch() -> str:
    machine = platform.machine().lower()
    return _ARCHITECTURES.get(machine, machine)


def get_binary_suffix() -> str:
    """The ``<os>_<arch>`` suffix of plugin binaries for the running platform."""
    goos = _goos()
    extension = ".exe" if goos == "windows" else ""
    return f"{goos}_{_goarch()}{extension}"


def _plugin_binary_name(provider_name: str) -> str:
    return f"{provider_repo_name(provider_name)}_{get_binary_suffix()}"


def sha256_file(path: str) -> str:
    """Hex SHA-256 digest of a file's contents."""
    hasher = hashlib.sha256()
    with open(path, "rb") as handle:
        for chunk in iter(lambda: handle.read(65536), b""):
            hasher.update(chunk)
    return hasher.hexdigest()


def validate_checksum_provider(provider_path: str, checksum_path: str) -> None:
    """Check a provider binary against the entry for this platform in a checksums file.

    Raises ValueError when the file is malformed, the checksum differs or no entry matches.
    """
    digest = sha256_file(provider_path)
    goos, goarch = _goos(), _goarch()
    with open(checksum_path, encoding="utf-8") as handle:
        for line in handle.read().splitlines():
            parts = line.split(CHECKSUM_SEPARATOR)
            if len(parts) != 2:
                raise ValueError("checksum file in incorrect format")
            expected, name = parts
            if goos in name and goarch in name:
                if expected == digest:
                    return
                raise ValueError(f"provider checksum invalid expected {name} got {digest}")
    raise ValueError(f"didn't find provider checksum vaildation for {provider_path}")


def _download_file(path: str, url: str, progress: Optional[ProgressCallback] = None) -> None:
    temporary = path + ".tmp"
    with urllib.request.urlopen(url) as response, open(temporary, "wb") as out:
        total = int(response.headers.get("Content-Length") or 0)
        read = 0
        while chunk := response.read(65536):
            out.write(chunk)
            read += len(chunk)
            if progress is not None:
                progress(read, total)
    os.replace(temporary, path)


class Hub:
    """Provider binaries kept in a plugin directory, downloaded from a release host.

    ``releases`` answers which release is latest and whether a provider is registered.
    ``url`` is the base of release downloads. When no ``signature_validator`` is given,
    checksum files are used without checking their detached signature.
    """

    def __init__(
        self,
        url: str,
        releases: _ReleaseSource,
        plugin_directory: Optional[str] = None,
        progress: Optional[_ProgressUpdater] = None,
        download_file: Optional[Downloader] = None,
        signature_validator: Optional[SignatureValidator] = None,
    ) -> None:
        self.url = url.rstrip("/")
        self.releases = releases
        self.plugin_directory = plugin_directory or os.path.join(".", ".cq", "providers")
        self.progress = progress
        self._download_file = download_file or _download_file
        self._validate_signature = signature_validator
        self._providers: dict[str, ProviderBinary] = {}
        self._load_existing()

    def get(self, provider_name: str, provider_version: str) -> ProviderBinary:
        """Return a provider already on disk; ``latest`` picks the highest version present."""
        if provider_version == LATEST_VERSION:
            latest = parse_version("v0.0.0")
            for binary in self._providers.values():
                if binary.name != provider_name:
                    continue
                try:
                    current = parse_version(binary.version)
                except VersionError:
                    log.warning("bad version provider %s exists in directory", provider_name)
                    continue
                if current > latest:
                    latest = current
            provider_version = latest.original()
        try:
            return self._providers[f"{provider_name}-{provider_version}"]
        except KeyError:
            raise ProviderMissingError(
                f"provider {provider_name}@{provider_version} is missing, download it first"
            ) from None

    def check_update(self, provider: Provider) -> str:
        """Return a newer available version of the provider, or an empty string."""
        latest = self.releases.get_latest_provider_release(provider.source, provider.name)
        if provider.version == LATEST_VERSION:
            return latest
        try:
            available = parse_version(latest)
        except VersionError:
            raise ValueError(
                f"bad version received: provider {provider.name}, version {latest}"
            ) from None
        try:
            current = parse_version(provider.version)
        except VersionError:
            raise ValueError(f"bad version: {provider}") from None
        return latest if current < available else ""

    def download(self, provider: Provider, no_verify: bool) -> ProviderBinary:
        """Download a provider unless it is already present, verifying it unless told not to."""
        requested = provider.version
        if requested == LATEST_VERSION:
            requested = self.releases.get_latest_provider_release(provider.source, provider.name)
        existing = self._providers.get(f"{provider.name}-{requested}")
        if existing is None:
            return self._download_provider(provider, requested, no_verify)

        if self.progress is not None:
            self.progress.add(
                provider.name, f"{provider_repo_name(provider.name)}@{requested}", requested, 2
            )
        if no_verify:
            if self.progress is not None:
                self.progress.update(provider.name, STATUS_WARN, "skipped verification...", 2)
            return existing
        if not self._verify_provider(provider, requested):
            raise RuntimeError(f"provider {provider.name}@{requested} verification failed")
        return existing

    def provider_path(self, org: str, name: str, version: str) -> str:
        """Expected location of a provider binary on disk."""
        return os.path.join(self.plugin_directory, org, name, f"{version}-{get_binary_suffix()}")

    def _release_url(self, provider: Provider, version: str, file_name: str) -> str:
        repo = provider_repo_name(provider.name)
        if version == LATEST_VERSION:
            return f"{self.url}/{provider.source}/{repo}/releases/latest/download/{file_name}"
        return f"{self.url}/{provider.source}/{repo}/releases/download/{version}/{file_name}"

    def _verify_provider(self, provider: Provider, version: str) -> bool:
        if provider.source != DEFAULT_ORGANIZATION:
            if self.progress is not None:
                self.progress.update(
                    provider.name, STATUS_WARN, "skipped community provider verification...", 2
                )
            return True

        checksums_path = os.path.join(
            self.plugin_directory, provider.source, provider.name, f"{version}.checksums.txt"
        )
        checksums_url = self._release_url(provider, version, "checksums.txt")
        if self.progress is not None:
            self.progress.update(provider.name, STATUS_IN_PROGRESS, "Verifying...", 1)
        try:
            self._download_file(checksums_path, checksums_url, None)
        except Exception as err:  # any download failure means the provider cannot be verified
            log.error("failed to download checksums file for %s: %s", provider.name, err)
            return False
        try:
            self._download_file(checksums_path + ".sig", checksums_url + ".sig", None)
        except Exception as err:
            log.error("failed to download signature file for %s: %s", provider.name, err)
            return False
        if self._validate_signature is not None:
            try:
                self._validate_signature(checksums_path, checksums_path + ".sig")
            except Exception as err:
                log.error("validating provider signature failed for %s: %s", provider.name, err)
                if self.progress is not None:
                    self.progress.update(provider.name, STATUS_ERROR, "Bad signature", 0)
                return False
        binary_path = self.provider_path(provider.source, provider.name, version)
        try:
            validate_checksum_provider(binary_path, checksums_path)
        except (OSError, ValueError) as err:
            log.error("validating provider checksum failed for %s: %s", provider.name, err)
            if self.progress is not None:
                self.progress.update(provider.name, STATUS_ERROR, "Bad checksum", 0)
            return False
        if self.progress is not None:
            self.progress.update(provider.name, STATUS_OK, "verified", 1)
        return True

    def _verify_registered(self, provider: Provider, version: str, no_verify: bool) -> bool:
        if no_verify:
            log.warning("skipping plugin registry verification for %s", provider.name)
            return True
        log.debug("verifying provider plugin %s@%s is registered", provider.name, version)
        return self.releases.is_provider_registered(provider.source, provider.name)

    def _download_provider(self, provider: Provider, version: str, no_verify: bool) -> ProviderBinary:
        if not self._verify_registered(provider, version, no_verify):
            raise RuntimeError(
                f"provider plugin {provider.name}@{version} not registered at {self.url}"
            )
        plugin_dir = os.path.join(self.plugin_directory, provider.source, provider.name)
        try:
            os.makedirs(plugin_dir, exist_ok=True)
        except OSError as err:
            raise RuntimeError(f"failed to create plugin directory: {err}") from err

        progress_cb: Optional[ProgressCallback] = None
        if self.progress is not None:
            display = f"{provider_repo_name(provider.name)}@{version}"
            progress = self.progress
            progress.add(provider.name, display, version, 2)

            def progress_cb(read: int, total: int) -> None:
                progress.update(provider.name, STATUS_IN_PROGRESS, f"Downloading {read}/{total}", 0)

        url = self._release_url(provider, version, _plugin_binary_name(provider.name))
        path = self.provider_path(provider.source, provider.name, version)
        try:
            self._download_file(path, url, progress_cb)
        except Exception as err:
            raise RuntimeError(
                f"plugin {provider.source}/{provider.name}@{version} failed to download: {err}"
            ) from err

        if not self._verify_provider(provider, version):
            raise RuntimeError(f"plugin {provider.source}/{provider.name}@{version} failed to verify")

        os.chmod(path, 0o754)
        binary = ProviderBinary(
            Provider(name=provider.name, version=version, source=provider.source), path
        )
        self._providers[f"{provider.name}-{version}"] = binary
        return binary

    def _load_existing(self) -> None:
        suffix = "-" + get_binary_suffix()
        for root, dirs, files in os.walk(self.plugin_directory):
            dirs.sort()
            for file_name in sorted(files):
                if "checksums" in file_name:
                    continue
                path = os.path.join(root, file_name)
                provider_name = os.path.basename(root)
                if path.endswith(".tmp"):
                    log.debug("found temp provider file for %s, cleaning up", provider_name)
                    try:
                        os.remove(path)
                    except OSError:
                        log.warning("failed to remove temp provider file for %s", provider_name)
                    continue
                organization = os.path.basename(os.path.dirname(root))
                version = file_name.split(suffix)[0]
                self._providers[f"{provider_name}-{version}"] = ProviderBinary(
                    Provider(name=provider_name, version=version, source=organization), path
                )
                log.debug("found existing provider %s@%s", provider_name, version)