"""Copy Monitor package exports for test/import convenience."""

from . import cli, config, constants, content, daemon, dbus_api, devices, eject, formatting, logging_utils, monitor, pricing, tracker, watcher

__all__ = [
    "cli",
    "config",
    "constants",
    "content",
    "daemon",
    "dbus_api",
    "devices",
    "eject",
    "formatting",
    "logging_utils",
    "monitor",
    "pricing",
    "tracker",
    "watcher",
]
