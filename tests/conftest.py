import time
from unittest.mock import Mock

import platformdirs
import pytest
import requests

_NETWORK_BLOCK_MSG = (
    "Network access is blocked during tests. Mock requests.* or Session.request."
)


def _block_network(*_args, **_kwargs):
    """
    Prevent network calls in tests by raising a RuntimeError.

    Raises:
        RuntimeError: with `_NETWORK_BLOCK_MSG` indicating that network access is blocked during tests.
    """
    raise RuntimeError(_NETWORK_BLOCK_MSG)


def pytest_configure(config):
    """
    Register the markers used to group fwfetch tests.

    Parameters:
        config: pytest.Config
    """
    config.addinivalue_line("markers", "unit: fast tests of a single component")
    config.addinivalue_line(
        "markers", "integration: tests that exercise several components together"
    )


@pytest.fixture(autouse=True)
def _isolate_test_environment(tmp_path_factory, monkeypatch):
    """
    Point every platformdirs location and the fwfetch environment variables at a temp layout.

    Creates temp cache, config and log directories, sets XDG_* variables, patches the
    platformdirs user_* functions, and clears token and log-level variables so the host
    environment cannot leak into tests.
    """
    base = tmp_path_factory.mktemp("fwfetch")
    cache_dir = base / "cache"
    config_dir = base / "config"
    state_dir = base / "state"
    log_dir = state_dir / "log"

    for path in (cache_dir, config_dir, state_dir, log_dir):
        path.mkdir(parents=True, exist_ok=True)

    monkeypatch.setenv("XDG_CACHE_HOME", str(cache_dir))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(config_dir))
    monkeypatch.setenv("XDG_STATE_HOME", str(state_dir))
    for name in ("GITHUB_TOKEN", "GITHUB_API_TOKEN", "FWFETCH_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)

    monkeypatch.setattr(
        platformdirs, "user_cache_dir", lambda *_args, **_kwargs: str(cache_dir)
    )
    monkeypatch.setattr(
        platformdirs, "user_config_dir", lambda *_args, **_kwargs: str(config_dir)
    )
    monkeypatch.setattr(
        platformdirs, "user_state_dir", lambda *_args, **_kwargs: str(state_dir)
    )
    monkeypatch.setattr(
        platformdirs, "user_log_dir", lambda *_args, **_kwargs: str(log_dir)
    )


def pytest_runtest_setup():
    """
    Prevent real network requests during tests by replacing HTTP entry points with blocking callables.
    """
    requests.get = _block_network
    requests.post = _block_network
    requests.put = _block_network
    requests.delete = _block_network
    requests.head = _block_network
    requests.patch = _block_network
    requests.options = _block_network
    requests.Session.request = _block_network


@pytest.fixture(autouse=True)
def _mock_time_sleep(monkeypatch):
    """
    Make time.sleep instant for all tests to prevent delays.
    """
    monkeypatch.setattr(time, "sleep", lambda *_args, **_kwargs: None)


@pytest.fixture
def mock_session():
    """A Mock standing in for requests.Session; tests set `get` behaviour."""
    return Mock(spec=requests.Session)


@pytest.fixture
def sample_image():
    """A small firmware image with one override target forcing the disk image format."""
    from fwfetch.images import FirmwareImage, TargetOverride

    return FirmwareImage(
        name="Sample Firmware",
        repo="example/sample_fw",
        targets=["rpi4", "grisp2"],
        fw_asset_pattern="sample_fw_{target}.fw",
        image_asset_pattern="sample_fw_{target}.img.gz",
        description="Sample image for tests",
        next_steps="Default next steps\n",
        overrides={
            "grisp2": TargetOverride(
                force_secondary_format=True, next_steps="GRiSP steps\n"
            )
        },
    )


@pytest.fixture
def cache_root(tmp_path):
    root = tmp_path / "cache"
    root.mkdir()
    return root
