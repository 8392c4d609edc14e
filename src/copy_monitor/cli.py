"""
Copy Monitor CLI - command-line access to the monitor without the daemon

- List attached removable volumes and eject them
- Classify paths and quote prices
- Watch volumes and print copy events as they happen
"""

import argparse
import json
import logging
import sys
import threading

from . import config as config_module, constants
from .content import ContentClassifier
from .devices import DeviceRegistry
from .eject import eject
from .formatting import bytes_to_gb, format_duration, format_size, format_speed
from .monitor import CopyMonitor
from .pricing import PricingEngine, PricingError


def setup_logging(verbose: bool = False):
    """Setup logging configuration"""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def cmd_list_devices(args):
    """List attached removable volumes"""
    registry = DeviceRegistry()
    devices = list(registry.scan().values())

    if args.json:
        print(json.dumps([d.to_dict() for d in devices], indent=2))
        return 0

    if not devices:
        print("No removable devices detected")
        return 0

    print(f"Found {len(devices)} device(s):\n")
    for i, device in enumerate(devices, 1):
        print(f"{i}. {device.id}  {device.name}")
        print(f"   Type: {device.type}")
        print(f"   Size: {format_size(device.size)}")
        if device.read_only:
            print("   Read-only")
        if device.mount_path:
            print(f"   Mounted: {', '.join(device.mountpoints)}")
        print()
    return 0


def cmd_eject(args):
    """Safely eject a device"""
    cfg = config_module.Config.load(args.config)
    registry = DeviceRegistry()
    registry.scan()
    result = eject(registry.get(args.device), timeout=cfg.eject_timeout_seconds)
    print(result.message)
    return 0 if result.success else 1


def cmd_classify(args):
    """Classify paths by content category"""
    classifier = ContentClassifier()
    for path in args.paths:
        label = classifier.classify(path)
        print(f"{label:16} {classifier.pricing_kind(label):8} {path}")
    return 0


def cmd_quote(args):
    """Quote a price for a copy job"""
    cfg = config_module.Config.load(args.config)
    engine = PricingEngine(cfg.pricing)
    try:
        quote = engine.quote(args.content_type, args.items, args.size_gb, args.download)
    except PricingError as e:
        print(f"Error: {e}")
        return 1

    if args.json:
        print(json.dumps(quote.to_dict(), indent=2))
        return 0

    for line in quote.breakdown:
        print(f"  {line.description:40} {line.amount}")
    print(f"Total: {quote.price} ({quote.method})")
    return 0


def _print_event(event, payload, as_json):
    if as_json:
        print(json.dumps({"event": event, **payload}), flush=True)
        return
    if event in (constants.EVENT_DEVICE_CONNECTED, constants.EVENT_DEVICE_DISCONNECTED, constants.EVENT_DEVICE_CHANGED):
        print(f"[{event}] {payload.get('id')} {payload.get('name')} ({payload.get('type')})", flush=True)
    elif event == constants.EVENT_FOLDER_COPY:
        print(f"[{event}] {payload.get('path')} -> {payload.get('content_type')}", flush=True)
    elif event == constants.EVENT_COPY_PROGRESS:
        progress = payload.get("progress")
        pct = f"{progress * 100:.0f}%" if progress is not None else "?"
        print(
            f"[{event}] {payload.get('name')} {format_size(payload.get('current_size'))} "
            f"{format_speed(payload.get('speed'))} {pct} eta {format_duration(payload.get('remaining'))}",
            flush=True,
        )
    elif event == constants.EVENT_COPY_COMPLETE:
        size_gb = bytes_to_gb(payload.get("current_size"))
        print(
            f"[{event}] {payload.get('name')} {size_gb:.2f} GB in {format_duration(payload.get('duration'))} "
            f"({payload.get('content_type')})",
            flush=True,
        )
    else:
        print(f"[{event}] {payload.get('name', payload.get('path', ''))} {payload.get('error') or ''}", flush=True)


def cmd_watch(args):
    """Watch devices (and extra paths) and print copy events"""
    cfg = config_module.Config.load(args.config)
    monitor = CopyMonitor(cfg)
    monitor.subscribe(lambda event, payload: _print_event(event, payload, args.json))
    stop_event = threading.Event()
    monitor.start(args.paths or None)
    print("Watching for copies, press Ctrl+C to stop")
    try:
        while not stop_event.wait(0.5):
            pass
    finally:
        monitor.stop()
    return 0


def main():
    """Main entry point"""
    parser = argparse.ArgumentParser(
        description='Copy Monitor CLI - removable media copy tracking and pricing',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  copy-monitor devices                         List removable devices
  copy-monitor eject /dev/sdb1                 Eject a device
  copy-monitor classify "Movies/Arabic/x.mkv"  Classify a path
  copy-monitor quote movies --items 3          Quote 3 movies
  copy-monitor watch /srv/staging              Watch devices and a folder
"""
    )

    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Enable verbose output')
    parser.add_argument('-c', '--config', help='Configuration file')

    subparsers = parser.add_subparsers(dest='command', help='Command to execute')

    devices_parser = subparsers.add_parser('devices', help='List removable devices')
    devices_parser.add_argument('-j', '--json', action='store_true',
                                help='Output in JSON format')
    devices_parser.set_defaults(func=cmd_list_devices)

    eject_parser = subparsers.add_parser('eject', help='Safely eject a device')
    eject_parser.add_argument('device', help='Device id (e.g., /dev/sdb1)')
    eject_parser.set_defaults(func=cmd_eject)

    classify_parser = subparsers.add_parser('classify', help='Classify paths by content')
    classify_parser.add_argument('paths', nargs='+', help='File or folder paths')
    classify_parser.set_defaults(func=cmd_classify)

    quote_parser = subparsers.add_parser('quote', help='Quote a copy job')
    quote_parser.add_argument('content_type',
                              choices=[constants.CONTENT_MOVIES, constants.CONTENT_SERIES,
                                       constants.CONTENT_MIXED, constants.CONTENT_PROGRAMS])
    quote_parser.add_argument('-n', '--items', type=int, default=0, help='Number of items')
    quote_parser.add_argument('-s', '--size-gb', type=float, default=0.0, help='Total size in GB')
    quote_parser.add_argument('-d', '--download', action='store_true', help='Priced as a download')
    quote_parser.add_argument('-j', '--json', action='store_true',
                              help='Output in JSON format')
    quote_parser.set_defaults(func=cmd_quote)

    watch_parser = subparsers.add_parser('watch', help='Print copy events as they happen')
    watch_parser.add_argument('paths', nargs='*', help='Extra directories to watch')
    watch_parser.add_argument('-j', '--json', action='store_true',
                              help='Output events in JSON format')
    watch_parser.set_defaults(func=cmd_watch)

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return 1

    setup_logging(args.verbose)

    try:
        return args.func(args)
    except KeyboardInterrupt:
        print("\nInterrupted")
        return 130
    except Exception as e:
        logging.error(f"Error: {e}", exc_info=args.verbose)
        return 1


if __name__ == '__main__':
    sys.exit(main())
