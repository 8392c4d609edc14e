from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

try:
    import pydbus
except ImportError:  # pragma: no cover
    pydbus = None
try:
    from pydbus.generic import signal as dbus_signal
except Exception:  # pragma: no cover
    dbus_signal = None

from . import constants

DBUS_NAME = "org.copymonitor.CopyMonitor"
DBUS_PATH = "/org/copymonitor/CopyMonitor"


def stringify(fields: Dict[str, Any]) -> Dict[str, str]:
    """Flatten a payload to the a{ss} shape DBus signals carry."""
    out = {}
    for key, value in fields.items():
        if value is None:
            out[key] = ""
        elif isinstance(value, (list, tuple)):
            out[key] = ",".join(str(v) for v in value)
        else:
            out[key] = str(value)
    return out


class CopyMonitorDBus:
    """
    <node>
      <interface name='org.copymonitor.CopyMonitor'>
        <method name='ListDevices'>
          <arg type='aa{ss}' name='devices' direction='out'/>
        </method>
        <method name='GetActiveOperations'>
          <arg type='aa{ss}' name='operations' direction='out'/>
        </method>
        <method name='EjectDevice'>
          <arg type='s' name='device_id' direction='in'/>
          <arg type='b' name='accepted' direction='out'/>
          <arg type='s' name='message' direction='out'/>
        </method>
        <method name='Quote'>
          <arg type='s' name='content_type' direction='in'/>
          <arg type='i' name='item_count' direction='in'/>
          <arg type='d' name='size_gb' direction='in'/>
          <arg type='b' name='is_download' direction='in'/>
          <arg type='x' name='price' direction='out'/>
          <arg type='s' name='method' direction='out'/>
          <arg type='a(sx)' name='breakdown' direction='out'/>
        </method>
        <signal name='Event'>
          <arg type='a{ss}' name='fields'/>
        </signal>
        <signal name='DeviceConnected'>
          <arg type='a{ss}' name='device'/>
        </signal>
        <signal name='DeviceDisconnected'>
          <arg type='a{ss}' name='device'/>
        </signal>
        <signal name='CopyProgress'>
          <arg type='s' name='operation_id'/>
          <arg type='s' name='path'/>
          <arg type='x' name='current_size'/>
          <arg type='d' name='progress'/>
          <arg type='d' name='speed'/>
        </signal>
        <signal name='CopyComplete'>
          <arg type='a{ss}' name='operation'/>
        </signal>
        <signal name='EjectComplete'>
          <arg type='s' name='device_id'/>
          <arg type='b' name='success'/>
          <arg type='s' name='message'/>
        </signal>
      </interface>
    </node>
    """

    def __init__(
        self,
        logger: logging.Logger,
        list_devices_func: Callable[[], List[Dict[str, Any]]],
        list_operations_func: Callable[[], List[Dict[str, Any]]],
        eject_func: Callable[[str, Callable[[Any], None]], Any],
        quote_func: Callable[[str, int, float, bool], Any],
    ):
        self.logger = logger
        self.list_devices_func = list_devices_func
        self.list_operations_func = list_operations_func
        self.eject_func = eject_func
        self.quote_func = quote_func
        self.bus: Optional[Any] = None

    # pydbus signal definitions
    Event = dbus_signal() if dbus_signal else None
    DeviceConnected = dbus_signal() if dbus_signal else None
    DeviceDisconnected = dbus_signal() if dbus_signal else None
    CopyProgress = dbus_signal() if dbus_signal else None
    CopyComplete = dbus_signal() if dbus_signal else None
    EjectComplete = dbus_signal() if dbus_signal else None

    def Export(self):  # noqa: N802
        """
        Export on DBus if pydbus/system bus available.
        """
        if not pydbus:
            self.logger.warning("pydbus not available; DBus API disabled")
            return None
        try:
            bus = pydbus.SystemBus()
            bus.publish(DBUS_NAME, self)
            self.logger.info("DBus service published at %s %s", DBUS_NAME, DBUS_PATH)
            self.bus = bus
            return self.bus
        except Exception as e:
            self.logger.error("Failed to publish DBus service: %s", e)
            self.logger.warning("DBus API disabled due to connection failure")
            return None

    # DBus-exposed methods
    def ListDevices(self) -> List[Dict[str, str]]:  # noqa: N802
        return [stringify(d) for d in self.list_devices_func()]

    def GetActiveOperations(self) -> List[Dict[str, str]]:  # noqa: N802
        return [stringify(op) for op in self.list_operations_func()]

    def EjectDevice(self, device_id: str) -> Tuple[bool, str]:  # noqa: N802
        """Start an eject on a worker thread; the outcome arrives as EjectComplete."""
        try:
            self.eject_func(device_id, lambda result: self._eject_finished(device_id, result))
        except Exception as e:
            self.logger.error("Failed to start eject for %s: %s", device_id, e)
            return False, str(e)
        return True, f"Eject started for {device_id}"

    def _eject_finished(self, device_id: str, result: Any) -> None:
        self.logger.info("Eject %s finished: %s", device_id, result.message)
        if not self.bus or not dbus_signal:
            return
        try:
            self.EjectComplete(device_id, bool(result.success), result.message)
        except Exception:  # pragma: no cover
            self.logger.exception("Failed to emit EjectComplete for %s", device_id)

    def Quote(self, content_type: str, item_count: int, size_gb: float, is_download: bool) -> Tuple[int, str, List[Tuple[str, int]]]:  # noqa: N802
        quote = self.quote_func(content_type, item_count, size_gb, is_download)
        return quote.price, quote.method, [(line.description, line.amount) for line in quote.breakdown]

    # Monitor listener: push events to DBus subscribers
    def handle_event(self, event: str, payload: Dict[str, Any]) -> None:
        if not self.bus or not dbus_signal:
            return
        try:
            if event == constants.EVENT_DEVICE_CONNECTED:
                self.DeviceConnected(stringify(payload))
            elif event == constants.EVENT_DEVICE_DISCONNECTED:
                self.DeviceDisconnected(stringify(payload))
            elif event == constants.EVENT_COPY_PROGRESS:
                progress = payload.get("progress")
                self.CopyProgress(
                    str(payload.get("id", "")),
                    str(payload.get("path", "")),
                    int(payload.get("current_size") or 0),
                    float(progress) if progress is not None else -1.0,
                    float(payload.get("speed") or 0.0),
                )
            elif event == constants.EVENT_COPY_COMPLETE:
                self.CopyComplete(stringify(payload))
            fields = stringify(payload)
            fields[constants.LOG_KEY_EVENT] = event
            self.Event(fields)
        except Exception:  # pragma: no cover
            self.logger.exception("Failed to emit %s signal", event)
