"""
Removable storage discovery.

The registry polls the udev block-device inventory on a fixed interval and
diffs each result against the previous one by device id. There is no
hot-plug subscription: detection latency is bounded by the poll interval.
"""

from __future__ import annotations

import logging
import re
import subprocess
import threading
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Optional, Tuple

import pyudev

from . import constants

logger = logging.getLogger(__name__)

SECTOR_SIZE = 512

SYSTEM_MOUNTPOINTS = {"/", "/boot", "/boot/efi", "/efi", "/usr", "/var", "/home", "/opt", "/srv", "[SWAP]"}

# Checked in order; "ssd" comes before "sd" so solid-state drives are not taken for cards.
DEVICE_TYPE_KEYWORDS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    (constants.DEVICE_PHONE, ("phone", "android", "iphone", "mtp")),
    (constants.DEVICE_SSD, ("ssd",)),
    (constants.DEVICE_SD_CARD, ("sd", "card", "mmc")),
    (constants.DEVICE_HDD, ("hdd", "hard")),
    (constants.DEVICE_FLASH, ("flash", "thumb", "usb", "stick", "pen drive")),
)


@dataclass
class Device:
    id: str
    name: str
    type: str = constants.DEVICE_UNKNOWN
    mountpoints: List[str] = field(default_factory=list)
    size: int = 0
    read_only: bool = False
    description: str = ""

    @property
    def mount_path(self) -> Optional[str]:
        return self.mountpoints[0] if self.mountpoints else None

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


def classify_device_type(description: Optional[str]) -> str:
    """Best-effort device type from a free-text description; never raises."""
    if not isinstance(description, str) or not description.strip():
        return constants.DEVICE_UNKNOWN
    desc = description.lower()
    for device_type, keywords in DEVICE_TYPE_KEYWORDS:
        if any(keyword in desc for keyword in keywords):
            return device_type
    return constants.DEVICE_UNKNOWN


def diff_devices(previous: Mapping[str, Device], current: Mapping[str, Device]) -> Tuple[List[Device], List[Device]]:
    """Return (connected, disconnected) devices between two scans."""
    connected = [dev for dev_id, dev in current.items() if dev_id not in previous]
    disconnected = [dev for dev_id, dev in previous.items() if dev_id not in current]
    return connected, disconnected


def remounted_devices(previous: Mapping[str, Device], current: Mapping[str, Device]) -> List[Device]:
    """Devices present in both scans whose mount targets changed (mounted, unmounted or moved)."""
    return [dev for dev_id, dev in current.items() if dev_id in previous and previous[dev_id].mountpoints != dev.mountpoints]


def _get(props: Mapping[str, str], key: str) -> Optional[str]:
    return props.get(key) or props.get(key.lower())


def is_external(props: Mapping[str, str], devnode: str) -> bool:
    if _get(props, "ID_BUS") == "usb":
        return True
    if _get(props, "ID_DRIVE_FLASH_SD") == "1":
        return True
    return devnode.startswith("/dev/mmcblk")


def has_filesystem(props: Mapping[str, str]) -> bool:
    return _get(props, "ID_FS_USAGE") == "filesystem" or bool(_get(props, "ID_FS_TYPE") and not _get(props, "ID_FS_USAGE"))


def is_system_volume(mountpoints: List[str]) -> bool:
    return any(mp in SYSTEM_MOUNTPOINTS or mp.startswith("/boot/") for mp in mountpoints)


def describe(props: Mapping[str, str]) -> str:
    """Free-text description fed to classify_device_type."""
    parts = []
    for key in ("ID_VENDOR", "ID_MODEL"):
        value = _get(props, key)
        if value:
            parts.append(value.replace("_", " "))
    if _get(props, "ID_MTP_DEVICE") == "1" or _get(props, "ID_MEDIA_PLAYER"):
        parts.append("phone")
    if _get(props, "ID_DRIVE_FLASH_SD") == "1" or _get(props, "ID_DRIVE_MEDIA_FLASH_SD") == "1":
        parts.append("sd card")
    if _get(props, "ID_DRIVE_THUMB") == "1":
        parts.append("flash")
    if _get(props, "ID_ATA_ROTATION_RATE_RPM") == "0":
        parts.append("ssd")
    return " ".join(parts)


_FINDMNT_ESCAPE = re.compile(r"\\x([0-9a-fA-F]{2})")
_PROC_MOUNTS_ESCAPE = re.compile(r"\\([0-7]{3})")


def read_mounts() -> Dict[str, List[str]]:
    """Map device node -> mount targets, via findmnt with /proc/mounts as fallback."""
    mounts: Dict[str, List[str]] = {}
    try:
        result = subprocess.run(
            ["findmnt", "-rn", "-o", "SOURCE,TARGET"],
            capture_output=True,
            text=True,
            check=False,
            timeout=5,
        )
    except (OSError, subprocess.TimeoutExpired) as exc:
        logger.debug("findmnt unavailable: %s", exc)
        result = None
    if result is not None and result.returncode == 0:
        for line in result.stdout.splitlines():
            parts = line.split()
            if len(parts) >= 2:
                source = _FINDMNT_ESCAPE.sub(lambda m: chr(int(m.group(1), 16)), parts[0])
                target = _FINDMNT_ESCAPE.sub(lambda m: chr(int(m.group(1), 16)), parts[1])
                mounts.setdefault(source, []).append(target)
        return mounts

    for line in Path("/proc/self/mounts").read_text().splitlines():
        parts = line.split()
        if len(parts) >= 2:
            source = _PROC_MOUNTS_ESCAPE.sub(lambda m: chr(int(m.group(1), 8)), parts[0])
            target = _PROC_MOUNTS_ESCAPE.sub(lambda m: chr(int(m.group(1), 8)), parts[1])
            mounts.setdefault(source, []).append(target)
    return mounts


def _attr_int(udev_device, name: str) -> Optional[int]:
    try:
        return udev_device.attributes.asint(name)
    except (KeyError, ValueError, AttributeError):
        return None


def enumerate_volumes(context, mounts: Optional[Dict[str, List[str]]] = None) -> Dict[str, Device]:
    """
    List externally attached storage volumes visible to udev.

    Internal disks, system volumes and partition-table-only disks are left
    out. Device ids are device nodes, stable only while the volume stays
    attached.
    """
    if mounts is None:
        mounts = read_mounts()
    volumes: Dict[str, Device] = {}
    for udev_device in context.list_devices(subsystem="block"):
        devnode = udev_device.device_node
        if not devnode:
            continue
        props = dict(udev_device.properties)
        if not is_external(props, devnode):
            continue
        mountpoints = mounts.get(devnode, [])
        if is_system_volume(mountpoints):
            continue
        if not mountpoints and not has_filesystem(props):
            continue
        description = describe(props)
        sectors = _attr_int(udev_device, "size")
        name = _get(props, "ID_FS_LABEL") or description or Path(devnode).name
        volumes[devnode] = Device(
            id=devnode,
            name=name,
            type=classify_device_type(description),
            mountpoints=list(mountpoints),
            size=(sectors or 0) * SECTOR_SIZE,
            read_only=_attr_int(udev_device, "ro") == 1,
            description=description,
        )
    return volumes


class DeviceRegistry:
    """
    Owns the set of connected devices and the periodic scan that maintains it.

    on_connect/on_disconnect/on_change are invoked from the scanning thread
    after the known set has been updated, so lookups from inside a callback
    already see the new state. on_change fires when a known device is
    mounted, unmounted or moved between scans.
    """

    def __init__(
        self,
        on_connect: Optional[Callable[[Device], None]] = None,
        on_disconnect: Optional[Callable[[Device], None]] = None,
        interval: float = 2.0,
        enumerate_func: Optional[Callable[[], Dict[str, Device]]] = None,
        on_change: Optional[Callable[[Device], None]] = None,
    ):
        self.on_connect = on_connect
        self.on_disconnect = on_disconnect
        self.on_change = on_change
        self.interval = interval
        self._enumerate = enumerate_func or self._enumerate_udev
        self._udev_context = None
        self._known: Dict[str, Device] = {}
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def _enumerate_udev(self) -> Dict[str, Device]:
        if self._udev_context is None:
            self._udev_context = pyudev.Context()
        return enumerate_volumes(self._udev_context)

    def devices(self) -> List[Device]:
        with self._lock:
            return list(self._known.values())

    def get(self, device_id: str) -> Optional[Device]:
        with self._lock:
            return self._known.get(device_id)

    def scan(self) -> Dict[str, Device]:
        try:
            current = self._enumerate()
        except Exception as exc:
            logger.warning("Device scan failed, retrying next tick: %s", exc)
            with self._lock:
                return dict(self._known)

        with self._lock:
            connected, disconnected = diff_devices(self._known, current)
            remounted = remounted_devices(self._known, current)
            self._known = dict(current)

        for device in disconnected:
            logger.info("Device disconnected: %s (%s)", device.id, device.name)
            self._notify(self.on_disconnect, device)
        for device in connected:
            logger.info("Device connected: %s (%s, type=%s, mount=%s)", device.id, device.name, device.type, device.mount_path)
            self._notify(self.on_connect, device)
        for device in remounted:
            logger.info("Device mount changed: %s (mount=%s)", device.id, device.mount_path)
            self._notify(self.on_change, device)
        return dict(current)

    def _notify(self, callback: Optional[Callable[[Device], None]], device: Device) -> None:
        if callback is None:
            return
        try:
            callback(device)
        except Exception:
            logger.exception("Device callback failed for %s", device.id)

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop_event.clear()
        self.scan()
        self._thread = threading.Thread(target=self._run, name="device-registry", daemon=True)
        self._thread.start()

    def _run(self) -> None:
        while not self._stop_event.wait(self.interval):
            self.scan()

    def stop(self, timeout: float = 5.0) -> None:
        self._stop_event.set()
        thread = self._thread
        if thread and thread is not threading.current_thread():
            thread.join(timeout)
        self._thread = None
        with self._lock:
            self._known = {}
