import pytest

from cqcore.version import DEVELOPMENT_VERSION, LAST_UPDATE_CHECK_FILE, check_core_update
from cqcore.versioning import VersionError, parse_semver


def _release(tag, error=None):
    calls = []

    def fetch(owner, repo):
        calls.append((owner, repo))
        if error is not None:
            raise error
        return tag

    fetch.calls = calls
    return fetch


@pytest.fixture
def data_dir(tmp_path):
    return tmp_path / ".cq"


def test_development_version_skips_check(data_dir):
    got = check_core_update(data_dir, 100, 10, DEVELOPMENT_VERSION, _release("1.0.0"))
    assert got is None
    assert not (data_dir / LAST_UPDATE_CHECK_FILE).exists()


def test_unreadable_check_file_raises(data_dir):
    (data_dir / LAST_UPDATE_CHECK_FILE).mkdir(parents=True)
    (data_dir / LAST_UPDATE_CHECK_FILE / "isdir").write_text("")
    with pytest.raises(OSError):
        check_core_update(data_dir, 100, 10, "1.0.0", _release("2.0.0"))


def test_disabled_check(data_dir):
    data_dir.mkdir()
    path = data_dir / LAST_UPDATE_CHECK_FILE
    path.write_text(" disabled  ")
    fetch = _release("2.0.0")
    assert check_core_update(data_dir, 100, 10, "1.0.0", fetch) is None
    assert path.read_text() == " disabled  "
    assert fetch.calls == []


def test_recorded_version_newer_than_current(data_dir):
    data_dir.mkdir()
    path = data_dir / LAST_UPDATE_CHECK_FILE
    path.write_text("50 1.5.0")
    got = check_core_update(data_dir, 100, 10, "1.0.0", _release("0.0.0"))
    assert got == parse_semver("1.5.0")
    assert path.read_text() == "50 1.5.0"


def test_same_version_period_not_passed(data_dir):
    data_dir.mkdir()
    path = data_dir / LAST_UPDATE_CHECK_FILE
    path.write_text("90 1.5.0")
    fetch = _release("2.0.0")
    assert check_core_update(data_dir, 100, 10, "1.5.0", fetch) is None
    assert path.read_text() == "90 1.5.0"
    assert fetch.calls == []


def test_release_host_error(data_dir):
    with pytest.raises(RuntimeError, match="fake"):
        check_core_update(data_dir, 100, 10, "1.0.0", _release("2.0.0", RuntimeError("fake")))
    assert (data_dir / LAST_UPDATE_CHECK_FILE).read_text() == "89 0.0.0"


def test_unparsable_release_tag(data_dir):
    with pytest.raises(VersionError):
        check_core_update(data_dir, 100, 10, "1.0.0", _release("weirdTag"))
    assert (data_dir / LAST_UPDATE_CHECK_FILE).read_text() == "89 0.0.0"


def test_newer_version_on_release_host(data_dir):
    data_dir.mkdir()
    path = data_dir / LAST_UPDATE_CHECK_FILE
    path.write_text("50 1.5.0")
    fetch = _release("2.0.0")
    got = check_core_update(data_dir, 100, 10, "1.6.0", fetch)
    assert got == parse_semver("2.0.0")
    assert path.read_text() == "100 2.0.0"
    assert fetch.calls == [("cloudquery", "cloudquery")]


def test_invalid_current_version_raises(data_dir):
    with pytest.raises(VersionError):
        check_core_update(data_dir, 100, 10, "not-a-version!", _release("2.0.0"))