import pytest

from cqcore.diagnostics import UNMANAGED, DiagnosticType, Severity
from cqcore.manager import DownloadResult, Manager, Plugin, Plugins, download
from cqcore.registry import Provider, ProviderBinary


class FakeRegistry:
    def __init__(self, result=None, error=None, binaries=None):
        self.result = result
        self.error = error
        self.binaries = binaries or {}
        self.download_calls = []

    def download(self, provider, no_verify):
        self.download_calls.append((provider, no_verify))
        if self.error is not None:
            raise self.error
        return self.result

    def get(self, name, version):
        try:
            return self.binaries[(name, version)]
        except KeyError:
            raise LookupError("missing") from None

    def check_update(self, provider):
        return ""


class FakeProcess:
    def __init__(self):
        self.killed = False

    def poll(self):
        return -9 if self.killed else None

    def kill(self):
        self.killed = True

    def wait(self):
        return -9


BINARY = ProviderBinary(Provider("test", "v0.0.3", "cloudquery"), "some/file/path")


def test_download_provider_calls_registry_each_time():
    registry = FakeRegistry(result=BINARY)
    manager = Manager(registry)
    requested = [Provider(name="test", version="latest")]
    assert manager.download_providers(requested, False) == [BINARY]
    assert manager.download_providers(requested, False) == [BINARY]
    assert registry.download_calls == [(Provider("test", "latest"), False)] * 2


def test_download_provider_error_propagates():
    manager = Manager(FakeRegistry(error=RuntimeError("failed to download")))
    with pytest.raises(RuntimeError, match="failed to download"):
        manager.download_providers([Provider(name="test", version="latest")], False)


def test_download_skips_reattached_provider():
    registry = FakeRegistry(result=BINARY)
    manager = Manager(registry, reattach={"test": object()})
    assert manager.download_providers([Provider("test", "latest")], False) == [None]
    assert registry.download_calls == []


def test_download_function_reports_diagnostic():
    message = "provider plugin unverified@v0.0.3 not registered at https://hub.cloudquery.io"
    manager = Manager(FakeRegistry(error=RuntimeError(message)))
    result, diags = download(manager, [Provider("unverified", "v0.0.3", "cloudquery")], False)
    assert result is None
    assert len(diags) == 1
    d = diags[0]
    assert d.error() == message
    assert d.summary == "failed to download providers: " + message
    assert d.type is DiagnosticType.INTERNAL
    assert d.severity is Severity.ERROR


def test_download_function_success():
    manager = Manager(FakeRegistry(result=BINARY))
    result, diags = download(manager, [Provider("test", "v0.0.3", "cloudquery")], True)
    assert result == DownloadResult([BINARY])
    assert not diags.has_diags()


def test_plugins_get_matches():
    unmanaged = Plugin(name="aws_aws", version=UNMANAGED)
    keyed = Plugin(name="gcp", version="v1")
    aliased = Plugin(name="azure@v2_prod", version="v2")
    plugins = Plugins({"aws": unmanaged, "gcp@v1": keyed, "azure@v2_prod": aliased})
    assert plugins.get(Provider("aws", "latest"), "any") is unmanaged
    assert plugins.get(Provider("gcp", "v1"), "") is keyed
    assert plugins.get(Provider("azure", "v2"), "prod") is aliased
    assert plugins.get(Provider("gcp", "v1"), "other") is None


def test_close_plugin_kills_and_forgets():
    manager = Manager(FakeRegistry())
    process = FakeProcess()
    plugin = Plugin(name="test", version="v0.0.3", process=process)
    manager.register(plugin)
    assert manager.is_reattach_provider(Provider("test"))
    manager.close_plugin(plugin)
    assert process.killed
    assert not manager.is_reattach_provider(Provider("test"))


def test_close_unmanaged_plugin_is_kept():
    manager = Manager(FakeRegistry(), reattach={"test": object()})
    plugin = manager.plugins["test"]
    assert plugin.name == "test_test"
    manager.close_plugin(plugin)
    assert manager.is_reattach_provider(Provider("test"))


def test_shutdown_closes_and_clears():
    manager = Manager(FakeRegistry(), reattach={"aws": object()})
    process = FakeProcess()
    manager.register(Plugin(name="test", version="v1", process=process))
    manager.shutdown()
    assert process.killed
    assert not manager.is_reattach_provider(Provider("aws"))
    assert not manager.is_reattach_provider(Provider("test"))


def test_create_plugin_uses_reattached_without_launching():
    client = object()

    def launcher(binary, alias, env):
        raise AssertionError("should not launch")

    manager = Manager(FakeRegistry(), reattach={"test": client}, launcher=launcher)
    plugin = manager.create_plugin(Provider("test", "latest"))
    assert plugin.provider is client
    assert plugin.version == UNMANAGED


def test_create_plugin_missing_provider():
    manager = Manager(FakeRegistry(), launcher=lambda b, a, e: Plugin(b.name, b.version))
    with pytest.raises(LookupError, match="no such provider bad-plugin"):
        manager.create_plugin(Provider("bad-plugin", "latest", "cloudquery"))


def test_create_plugin_invalid_name():
    manager = Manager(FakeRegistry())
    with pytest.raises(ValueError):
        manager.create_plugin(Provider("a/b/c", "latest"))


def test_create_plugin_launches_and_registers():
    launched = []

    def launcher(binary, alias, env):
        launched.append((binary, alias, env))
        return Plugin(name=binary.name, version=binary.version)

    registry = FakeRegistry(binaries={("test", "latest"): BINARY})
    manager = Manager(registry, launcher=launcher)
    plugin = manager.create_plugin(Provider("test", "latest"), env=["A=1"])
    assert plugin.name == "test"
    assert plugin.version == "v0.0.3"
    assert launched == [(BINARY, "", ["A=1"])]
    assert manager.is_reattach_provider(Provider("test"))