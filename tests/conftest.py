"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import tempfile
from pathlib import Path
from typing import Generator
from unittest.mock import Mock

import pytest

from copy_monitor import devices


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def mock_config_file(temp_dir: Path) -> Path:
    """Create a test configuration file."""
    config_content = """
scan_interval_seconds = 5
sample_interval_seconds = 0.5
stability_threshold = 4
watch_depth = 2
tracked_extensions = ["MKV", ".mp4"]
monitored_paths = ["/srv/staging"]
eject_timeout_seconds = 10
notification_enabled = false

[pricing]
single_movie_price = 120
price_series_per_gb = 40
bulk_threshold = 3
"""
    config_path = temp_dir / "config.toml"
    config_path.write_text(config_content)
    return config_path


@pytest.fixture
def mock_empty_config(temp_dir: Path) -> Path:
    """Create an empty configuration file."""
    config_path = temp_dir / "empty_config.toml"
    config_path.write_text("")
    return config_path


# Mock udev properties for unit testing
@pytest.fixture
def mock_usb_flash_props() -> dict:
    """USB thumb drive partition."""
    return {
        "ID_BUS": "usb",
        "DEVTYPE": "partition",
        "ID_VENDOR": "SanDisk",
        "ID_MODEL": "Cruzer_Blade",
        "ID_DRIVE_THUMB": "1",
        "ID_FS_USAGE": "filesystem",
        "ID_FS_TYPE": "exfat",
        "ID_FS_LABEL": "MOVIES",
    }


@pytest.fixture
def mock_sata_props() -> dict:
    """Internal SATA disk partition."""
    return {
        "ID_BUS": "ata",
        "DEVTYPE": "partition",
        "ID_MODEL": "Samsung_SSD_870",
        "ID_FS_USAGE": "filesystem",
        "ID_FS_TYPE": "ext4",
    }


def make_udev_device(devnode: str, props: dict, size_sectors: int = 2048, read_only: int = 0) -> Mock:
    """Build a pyudev.Device stand-in."""
    dev = Mock()
    dev.device_node = devnode
    dev.properties = props
    attrs = {"size": size_sectors, "ro": read_only}
    dev.attributes.asint.side_effect = lambda name: attrs[name]
    return dev


@pytest.fixture
def make_device():
    """Factory for registry Device records."""
    def _make(dev_id: str = "/dev/sdb1", mount: str = "/media/usb", **kwargs) -> devices.Device:
        kwargs.setdefault("name", Path(dev_id).name)
        return devices.Device(id=dev_id, mountpoints=[mount] if mount else [], **kwargs)
    return _make


@pytest.fixture
def udev_device():
    """Factory for pyudev.Device stand-ins."""
    return make_udev_device
