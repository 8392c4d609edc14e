from __future__ import annotations

import argparse
import logging
import os
import signal
import threading
from typing import Any, Dict, List, Optional

from . import config as config_module, constants, dbus_api, logging_utils, pricing
from .formatting import bytes_to_gb, format_size
from .monitor import CopyMonitor

try:
    from gi.repository import GLib  # type: ignore
except Exception:  # pragma: no cover
    GLib = None


class Daemon:
    """
    Hosts the copy monitor and the pricing engine.

    ``store`` is the persistence collaborator. Any object offering
    ``save_copy_operation(record)`` and ``get_settings()`` works; without one
    finished copies are only logged and pushed to subscribers.
    """

    def __init__(self, config_path=None, store=None):
        self.config = config_module.Config.load(config_path)
        self.logger = logging_utils.setup_logging()
        self.store = store
        self.pricing = pricing.PricingEngine(self.config.pricing)
        self.monitor = CopyMonitor(self.config, logger=self.logger)
        self._stop_event = threading.Event()
        self.dbus_service = None
        self._dbus_loop = None

    def quote(self, content_type: str, item_count: int, size_gb: float, is_download: bool = False) -> pricing.PriceQuote:
        return self.pricing.quote(content_type, item_count, size_gb, is_download)

    def build_record(self, snapshot: Dict[str, Any]) -> Dict[str, Any]:
        """Turn a completed copy into the record handed to the store, priced as a single item."""
        device = self.monitor.get_device(str(snapshot.get("device_id", "")))
        label = snapshot.get("content_type") or self.monitor.classifier.classify(str(snapshot.get("path", "")))
        kind = self.monitor.classifier.pricing_kind(label)
        size_gb = bytes_to_gb(snapshot.get("current_size"))
        quote = self.pricing.quote(kind, 1, size_gb, False)
        return {
            "operation_id": snapshot.get("id"),
            "device_type": device.type if device else constants.DEVICE_UNKNOWN,
            "device_name": device.name if device else "",
            "content_type": kind,
            "content_category": label,
            "items_count": 1,
            "size_gb": round(size_gb, 3),
            "price": quote.price,
            "pricing_method": quote.method,
            "source_path": snapshot.get("path"),
            "is_download": False,
            "duration": snapshot.get("duration"),
        }

    def handle_event(self, event: str, payload: Dict[str, Any]) -> None:
        if event == constants.EVENT_COPY_COMPLETE:
            record = self.build_record(payload)
            self.logger.info(
                "Copy finished: %s (%s, %s) price=%s",
                record["source_path"], format_size(payload.get("current_size")), record["content_category"], record["price"],
            )
            self._save_record(record)
        elif event == constants.EVENT_FOLDER_COPY:
            self.logger.info("Folder copy detected: %s (%s)", payload.get("path"), payload.get("content_type"))

    def _save_record(self, record: Dict[str, Any]) -> None:
        if self.store is None:
            return
        try:
            result = self.store.save_copy_operation(record) or {}
        except Exception as exc:
            self.logger.error("Failed to save copy operation %s: %s", record.get("operation_id"), exc)
            return
        if result.get("success"):
            self.logger.debug("Saved copy operation as %s", result.get("id"))
        else:
            self.logger.warning("Store rejected copy operation %s", record.get("operation_id"))

    def reload_settings(self) -> bool:
        """Pull pricing rates and monitored paths from the store and apply them live."""
        if self.store is None:
            return False
        try:
            settings = self.store.get_settings() or {}
        except Exception as exc:
            self.logger.error("Failed to load settings from store: %s", exc)
            return False
        self.apply_settings(settings)
        return True

    def save_settings(self, settings: Dict[str, Any]) -> bool:
        if self.store is not None:
            try:
                self.store.save_settings(settings)
            except Exception as exc:
                self.logger.error("Failed to save settings: %s", exc)
                return False
        self.apply_settings(settings)
        return True

    def get_statistics(self, period: str = "today") -> Dict[str, Any]:
        if self.store is None:
            return {}
        return self.store.get_statistics(period) or {}

    def apply_settings(self, settings: Dict[str, Any]) -> None:
        merged = self.config.pricing.to_dict()
        merged.update({pricing.SETTING_KEYS.get(key, key): value for key, value in settings.items()})
        self.pricing.update_settings(merged)
        if self.monitor.running:
            for path in _as_path_list(settings.get("monitored_paths")):
                device_id = constants.PATH_DEVICE_PREFIX + os.path.abspath(path)
                if self.monitor.get_device(device_id) is None:
                    self.monitor.watch_path(path)

    def stop(self) -> None:
        self.logger.info("Stopping daemon")
        self._stop_event.set()

    def run(self, paths: Optional[List[str]] = None) -> None:
        self.logger.info("Copy monitor daemon starting")

        def stop(*_args):
            self.stop()

        signal.signal(signal.SIGINT, stop)
        signal.signal(signal.SIGTERM, stop)

        dbus_service = dbus_api.CopyMonitorDBus(
            self.logger,
            lambda: [d.to_dict() for d in self.monitor.devices()],
            self.monitor.get_active_operations,
            self.monitor.eject_device_async,
            self.quote,
        )
        dbus_service.Export()
        self.dbus_service = dbus_service

        if GLib:
            def _run_loop():
                loop = GLib.MainLoop()
                self._dbus_loop = loop
                loop.run()

            threading.Thread(target=_run_loop, daemon=True).start()

        self.monitor.subscribe(self.handle_event)
        if self.config.notification_enabled:
            self.monitor.subscribe(dbus_service.handle_event)
        self.monitor.start(paths or None)
        self.reload_settings()

        while not self._stop_event.is_set():
            self._stop_event.wait(0.5)
        self.monitor.stop()
        if self._dbus_loop is not None:
            self._dbus_loop.quit()
        self.logger.info("Copy monitor daemon stopped")


def _as_path_list(value: Any) -> List[str]:
    if not value:
        return []
    if isinstance(value, str):
        return [p for p in value.split(os.pathsep) if p]
    return [str(p) for p in value]


def main():
    parser = argparse.ArgumentParser(description="Removable-media copy monitor and pricing daemon.")
    parser.add_argument("--config", type=str, help="Path to config.toml")
    parser.add_argument("--watch", action="append", default=[], metavar="PATH", help="Also watch this directory (repeatable)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args()
    daemon = Daemon(config_path=args.config)
    if args.verbose:
        daemon.logger.setLevel(logging.DEBUG)
    daemon.run(paths=args.watch)


if __name__ == "__main__":
    main()
