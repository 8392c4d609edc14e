from __future__ import annotations

import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from . import constants
from .pricing import PricingSettings

DEFAULT_CONFIG_PATH = Path("/etc/copy-monitor/config.toml")


@dataclass
class Config:
    scan_interval_seconds: float = 2.0
    sample_interval_seconds: float = 1.0
    stability_threshold: int = 3  # consecutive unchanged samples before a copy counts as finished
    watch_depth: int = 3
    tracked_extensions: List[str] = field(default_factory=lambda: list(constants.VIDEO_EXTENSIONS))
    monitored_paths: List[str] = field(default_factory=list)
    eject_timeout_seconds: float = 30.0
    notification_enabled: bool = True
    pricing: PricingSettings = field(default_factory=PricingSettings)

    def __post_init__(self) -> None:
        self.tracked_extensions = normalize_extensions(self.tracked_extensions)

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "Config":
        cfg_path = Path(path) if path else DEFAULT_CONFIG_PATH
        if not cfg_path.exists():
            return cls()
        with cfg_path.open("rb") as f:
            parsed = tomllib.load(f)

        pricing = PricingSettings()
        if isinstance(parsed.get("pricing"), dict):
            pricing = PricingSettings.from_dict(parsed["pricing"])

        return cls(
            scan_interval_seconds=float(parsed.get("scan_interval_seconds", 2.0)),
            sample_interval_seconds=float(parsed.get("sample_interval_seconds", 1.0)),
            stability_threshold=max(1, int(parsed.get("stability_threshold", 3))),
            watch_depth=int(parsed.get("watch_depth", 3)),
            tracked_extensions=parsed.get("tracked_extensions", list(constants.VIDEO_EXTENSIONS)),
            monitored_paths=parsed.get("monitored_paths", []),
            eject_timeout_seconds=float(parsed.get("eject_timeout_seconds", 30.0)),
            notification_enabled=parsed.get("notification_enabled", True),
            pricing=pricing,
        )


def normalize_extensions(extensions) -> List[str]:
    """Lower-case extensions and make sure each carries its leading dot."""
    result = []
    for ext in extensions or []:
        ext = str(ext).strip().lower()
        if not ext:
            continue
        if not ext.startswith("."):
            ext = "." + ext
        if ext not in result:
            result.append(ext)
    return result
