from __future__ import annotations

import logging
import subprocess
import sys
from dataclasses import asdict, dataclass
from typing import List, Optional, Tuple

from .devices import Device

logger = logging.getLogger(__name__)

MSG_NOT_FOUND = "Device not found"
MSG_EJECTED = "Device ejected safely"
MSG_UNMOUNTED = "Device unmounted and can be removed"
MSG_DIALOG = "Use the safe-removal dialog to remove the device"
MSG_MANUAL = "Automatic eject failed; wait for copying to stop, then remove the device manually"

Commands = List[List[str]]


@dataclass
class EjectResult:
    success: bool
    message: str
    device_id: str = ""
    method: str = "none"  # primary, fallback or none

    def to_dict(self):
        return asdict(self)


def _windows_drive(mount_path: str) -> str:
    return mount_path.rstrip("\\/")


def eject_commands(device: Device, platform: str) -> Tuple[Commands, Commands]:
    """Return (primary, fallback) command sequences for the platform."""
    mount = device.mount_path
    if platform.startswith("win"):
        drive = _windows_drive(mount or "")
        script = (
            "$vol = Get-WmiObject -Class Win32_Volume | Where-Object { $_.DriveLetter -eq '%s' }; "
            "$vol.Dismount($false, $false)" % drive
        )
        primary = [["powershell", "-NoProfile", "-Command", script]]
        fallback = [["rundll32.exe", "shell32.dll,Control_RunDLL", "hotplug.dll"]]
        return primary, fallback
    if platform == "darwin":
        return [["diskutil", "eject", mount or device.id]], [["diskutil", "unmountDisk", "force", device.id]]
    primary = [
        ["udisksctl", "unmount", "-b", device.id, "--no-user-interaction"],
        ["udisksctl", "power-off", "-b", device.id, "--no-user-interaction"],
    ]
    fallback = [["umount", mp] for mp in device.mountpoints] + [["eject", device.id]]
    return primary, fallback


def _run_sequence(commands: Commands, timeout: float) -> bool:
    for cmd in commands:
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, check=False, timeout=timeout)
        except FileNotFoundError:
            logger.debug("Eject helper not installed: %s", cmd[0])
            return False
        except subprocess.TimeoutExpired:
            logger.warning("Eject command timed out after %ss: %s", timeout, " ".join(cmd))
            return False
        if result.returncode != 0:
            logger.warning("Eject command failed (%s): %s", result.returncode, (result.stderr or "").strip())
            return False
    return True


def eject(device: Optional[Device], timeout: float = 30.0, platform: Optional[str] = None) -> EjectResult:
    """
    Ask the OS to release a device so it can be unplugged without data loss.

    Tries the platform's regular safe-removal call, then a lower-level
    fallback, and finally reports a manual-removal instruction. Never raises
    for a failed eject; every command is bounded by ``timeout``.
    """
    if device is None:
        return EjectResult(success=False, message=MSG_NOT_FOUND)
    platform = platform or sys.platform
    if not device.mount_path and not platform.startswith("linux"):
        return EjectResult(success=False, message=MSG_NOT_FOUND, device_id=device.id)

    primary, fallback = eject_commands(device, platform)
    if _run_sequence(primary, timeout):
        logger.info("Ejected %s (%s)", device.id, device.name)
        return EjectResult(success=True, message=MSG_EJECTED, device_id=device.id, method="primary")

    logger.warning("Primary eject failed for %s, trying fallback", device.id)
    if _run_sequence(fallback, timeout):
        if platform.startswith("win"):
            return EjectResult(success=False, message=MSG_DIALOG, device_id=device.id, method="fallback")
        return EjectResult(success=True, message=MSG_UNMOUNTED, device_id=device.id, method="fallback")

    logger.error("Could not eject %s; manual removal required", device.id)
    return EjectResult(success=False, message=MSG_MANUAL, device_id=device.id, method="none")
