"""Unit tests for device discovery with mocked udev.

These tests don't require real devices, they test logic with mocks.
"""

from __future__ import annotations

import subprocess
from unittest.mock import Mock, patch

import pytest

from copy_monitor import constants, devices


class TestClassifyDeviceType:

    @pytest.mark.parametrize(
        "description,expected",
        [
            ("Samsung Android Phone", constants.DEVICE_PHONE),
            ("Apple iPhone", constants.DEVICE_PHONE),
            ("Samsung SSD T7", constants.DEVICE_SSD),
            ("Generic SD Card Reader", constants.DEVICE_SD_CARD),
            ("mmc reader", constants.DEVICE_SD_CARD),
            ("WD External HDD", constants.DEVICE_HDD),
            ("Seagate Hard Drive", constants.DEVICE_HDD),
            ("Kingston Flash Drive", constants.DEVICE_FLASH),
            ("USB Stick", constants.DEVICE_FLASH),
            ("Mystery Box", constants.DEVICE_UNKNOWN),
        ],
    )
    def test_keywords(self, description, expected):
        assert devices.classify_device_type(description) == expected

    def test_ssd_not_taken_for_sd_card(self):
        assert devices.classify_device_type("portable ssd") == constants.DEVICE_SSD

    def test_phone_wins_over_flash(self):
        assert devices.classify_device_type("android usb") == constants.DEVICE_PHONE

    @pytest.mark.parametrize("value", [None, "", "   ", 42])
    def test_missing_description(self, value):
        assert devices.classify_device_type(value) == constants.DEVICE_UNKNOWN


class TestDiffDevices:

    def test_connected_and_disconnected(self, make_device):
        a = make_device("/dev/sdb1")
        b = make_device("/dev/sdc1")
        c = make_device("/dev/sdd1")

        connected, disconnected = devices.diff_devices({a.id: a, b.id: b}, {b.id: b, c.id: c})

        assert connected == [c]
        assert disconnected == [a]

    def test_no_change(self, make_device):
        a = make_device()

        assert devices.diff_devices({a.id: a}, {a.id: a}) == ([], [])

    def test_remounted(self, make_device):
        a = make_device("/dev/sdb1", None)
        b = make_device("/dev/sdc1", "/media/b")
        a_mounted = make_device("/dev/sdb1", "/media/a")
        c = make_device("/dev/sdd1")

        assert devices.remounted_devices({a.id: a, b.id: b}, {a.id: a_mounted, b.id: b, c.id: c}) == [a_mounted]


class TestEnumerateVolumes:

    def test_lists_external_volume(self, udev_device, mock_usb_flash_props):
        context = Mock()
        context.list_devices.return_value = [udev_device("/dev/sdb1", mock_usb_flash_props, size_sectors=4096)]

        volumes = devices.enumerate_volumes(context, mounts={"/dev/sdb1": ["/media/user/MOVIES"]})

        context.list_devices.assert_called_once_with(subsystem="block")
        dev = volumes["/dev/sdb1"]
        assert dev.name == "MOVIES"
        assert dev.type == constants.DEVICE_FLASH
        assert dev.mountpoints == ["/media/user/MOVIES"]
        assert dev.mount_path == "/media/user/MOVIES"
        assert dev.size == 4096 * devices.SECTOR_SIZE
        assert dev.read_only is False

    def test_skips_internal_disk(self, udev_device, mock_sata_props):
        context = Mock()
        context.list_devices.return_value = [udev_device("/dev/sda2", mock_sata_props)]

        assert devices.enumerate_volumes(context, mounts={"/dev/sda2": ["/data"]}) == {}

    def test_skips_system_mount(self, udev_device, mock_usb_flash_props):
        context = Mock()
        context.list_devices.return_value = [udev_device("/dev/sdb1", mock_usb_flash_props)]

        assert devices.enumerate_volumes(context, mounts={"/dev/sdb1": ["/boot/efi"]}) == {}

    def test_skips_disk_without_filesystem(self, udev_device):
        context = Mock()
        props = {"ID_BUS": "usb", "DEVTYPE": "disk", "ID_PART_TABLE_TYPE": "dos"}
        context.list_devices.return_value = [udev_device("/dev/sdb", props)]

        assert devices.enumerate_volumes(context, mounts={}) == {}

    def test_unmounted_volume_listed_without_mount(self, udev_device, mock_usb_flash_props):
        context = Mock()
        context.list_devices.return_value = [udev_device("/dev/sdb1", mock_usb_flash_props, read_only=1)]

        dev = devices.enumerate_volumes(context, mounts={})["/dev/sdb1"]

        assert dev.mount_path is None
        assert dev.read_only is True

    def test_sd_card_reader(self, udev_device):
        context = Mock()
        props = {"ID_DRIVE_FLASH_SD": "1", "ID_FS_TYPE": "vfat"}
        context.list_devices.return_value = [udev_device("/dev/mmcblk0p1", props)]

        dev = devices.enumerate_volumes(context, mounts={"/dev/mmcblk0p1": ["/media/SD"]})["/dev/mmcblk0p1"]

        assert dev.type == constants.DEVICE_SD_CARD
        assert dev.name == "sd card"


class TestReadMounts:

    @patch("copy_monitor.devices.subprocess.run")
    def test_findmnt_output(self, mock_run):
        mock_run.return_value = Mock(returncode=0, stdout="/dev/sdb1 /media/My\\x20Disk\n/dev/sda1 /\n")

        mounts = devices.read_mounts()

        assert mounts["/dev/sdb1"] == ["/media/My Disk"]
        assert mounts["/dev/sda1"] == ["/"]

    @patch("copy_monitor.devices.Path.read_text")
    @patch("copy_monitor.devices.subprocess.run")
    def test_falls_back_to_proc_mounts(self, mock_run, mock_read):
        mock_run.side_effect = FileNotFoundError("findmnt")
        mock_read.return_value = "/dev/sdb1 /media/My\\040Disk vfat rw 0 0\n"

        mounts = devices.read_mounts()

        assert mounts == {"/dev/sdb1": ["/media/My Disk"]}

    @patch("copy_monitor.devices.Path.read_text")
    @patch("copy_monitor.devices.subprocess.run")
    def test_findmnt_timeout_falls_back(self, mock_run, mock_read):
        mock_run.side_effect = subprocess.TimeoutExpired("findmnt", 5)
        mock_read.return_value = ""

        assert devices.read_mounts() == {}


class TestDeviceRegistry:
    """Periodic scan and diff logic."""

    def test_scan_reports_connect_and_disconnect(self, make_device):
        a = make_device("/dev/sdb1")
        b = make_device("/dev/sdc1")
        results = [{a.id: a}, {a.id: a, b.id: b}, {b.id: b}]
        on_connect, on_disconnect = Mock(), Mock()
        registry = devices.DeviceRegistry(on_connect, on_disconnect, enumerate_func=lambda: results.pop(0))

        registry.scan()
        registry.scan()
        registry.scan()

        assert [c.args[0] for c in on_connect.call_args_list] == [a, b]
        assert [c.args[0] for c in on_disconnect.call_args_list] == [a]
        assert registry.devices() == [b]

    def test_identical_scans_are_silent(self, make_device):
        a = make_device()
        on_connect = Mock()
        registry = devices.DeviceRegistry(on_connect, enumerate_func=lambda: {a.id: a})

        registry.scan()
        registry.scan()

        on_connect.assert_called_once_with(a)

    def test_mount_appearing_later_fires_on_change(self, make_device):
        unmounted = make_device("/dev/sdb1", None)
        mounted = make_device("/dev/sdb1", "/media/usb")
        results = [{unmounted.id: unmounted}, {mounted.id: mounted}, {mounted.id: mounted}]
        on_connect, on_change = Mock(), Mock()
        registry = devices.DeviceRegistry(on_connect, on_change=on_change, enumerate_func=lambda: results.pop(0))

        registry.scan()
        registry.scan()
        registry.scan()

        on_connect.assert_called_once_with(unmounted)
        on_change.assert_called_once_with(mounted)
        assert registry.get("/dev/sdb1").mount_path == "/media/usb"

    def test_scan_failure_keeps_previous_set(self, make_device):
        a = make_device()
        enumerate_func = Mock(side_effect=[{a.id: a}, OSError("udev gone")])
        on_disconnect = Mock()
        registry = devices.DeviceRegistry(on_disconnect=on_disconnect, enumerate_func=enumerate_func)

        registry.scan()
        result = registry.scan()

        assert result == {a.id: a}
        assert registry.get(a.id) is a
        on_disconnect.assert_not_called()

    def test_callback_sees_updated_state(self, make_device):
        a = make_device()
        seen = []
        registry = devices.DeviceRegistry(enumerate_func=lambda: {a.id: a})
        registry.on_connect = lambda dev: seen.append(registry.get(dev.id))

        registry.scan()

        assert seen == [a]

    def test_callback_error_does_not_stop_scan(self, make_device):
        a = make_device("/dev/sdb1")
        b = make_device("/dev/sdc1")
        on_connect = Mock(side_effect=[RuntimeError("boom"), None])
        registry = devices.DeviceRegistry(on_connect, enumerate_func=lambda: {a.id: a, b.id: b})

        registry.scan()

        assert on_connect.call_count == 2

    def test_start_scans_immediately_and_stop_clears(self, make_device):
        a = make_device()
        registry = devices.DeviceRegistry(interval=60, enumerate_func=lambda: {a.id: a})

        registry.start()
        try:
            assert registry.get(a.id) is a
        finally:
            registry.stop()

        assert registry.devices() == []

    def test_start_twice_is_noop(self):
        enumerate_func = Mock(return_value={})
        registry = devices.DeviceRegistry(interval=60, enumerate_func=enumerate_func)

        registry.start()
        registry.start()
        registry.stop()

        enumerate_func.assert_called_once()

    @patch("copy_monitor.devices.enumerate_volumes")
    @patch("copy_monitor.devices.pyudev.Context")
    def test_default_enumerator_uses_pyudev(self, mock_context, mock_enumerate):
        mock_enumerate.return_value = {}
        registry = devices.DeviceRegistry()

        registry.scan()
        registry.scan()

        mock_context.assert_called_once()
        mock_enumerate.assert_called_with(mock_context.return_value)


def test_device_to_dict(make_device):
    data = make_device("/dev/sdb1", "/media/usb", type=constants.DEVICE_FLASH).to_dict()

    assert data["id"] == "/dev/sdb1"
    assert data["type"] == constants.DEVICE_FLASH
    assert data["mountpoints"] == ["/media/usb"]
