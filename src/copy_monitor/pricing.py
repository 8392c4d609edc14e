"""
Pricing engine for copy jobs.

Turns a content type, item count, size and download flag into an itemized
quote using tiered rates. Rates are live configuration: the whole rule set
can be replaced at any time and the next quote uses the new values.
"""

from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass, field, fields
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Mapping, Optional, Union

from . import constants

logger = logging.getLogger(__name__)

KNOWN_CONTENT_TYPES = (
    constants.CONTENT_MOVIES,
    constants.CONTENT_SERIES,
    constants.CONTENT_MIXED,
    constants.CONTENT_PROGRAMS,
)

# Keys used by the settings store for the same rates
SETTING_KEYS = {
    "price_movie_single": "single_movie_price",
    "price_movie_bulk_per_gb": "bulk_price_per_gb",
    "price_movie_download": "download_movie_price",
    "price_series_per_gb": "series_price_per_gb",
    "price_series_download_per_gb": "download_series_price_per_gb",
    "movie_bulk_threshold": "bulk_threshold",
}

# Rough size of one movie, used only by quick estimates
ESTIMATED_GB_PER_MOVIE = 2


class PricingError(ValueError):
    """Raised when a quote cannot be computed from the given input."""


class UnknownContentTypeError(PricingError):
    def __init__(self, content_type: Any):
        super().__init__(f"Unknown content type: {content_type!r} (expected one of {', '.join(KNOWN_CONTENT_TYPES)})")
        self.content_type = content_type


def _as_number(value: Any, default: Union[int, float]) -> Union[int, float]:
    if value is None or isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(number) or number < 0:
        return default
    return int(number) if number.is_integer() else number


def round_currency(amount: float) -> int:
    """Round half-up to a whole currency unit (2.5 -> 3, not banker's 2)."""
    return int(Decimal(str(amount)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


@dataclass
class PricingSettings:
    single_movie_price: Union[int, float] = 100
    bulk_price_per_gb: Union[int, float] = 50
    series_price_per_gb: Union[int, float] = 50
    download_movie_price: Union[int, float] = 150
    download_series_price_per_gb: Union[int, float] = 100
    bulk_threshold: int = 5

    @classmethod
    def from_dict(cls, values: Optional[Mapping[str, Any]]) -> "PricingSettings":
        """
        Build settings from a mapping of attribute names or store keys.

        Missing or unparsable entries take their default value, so the
        result is always a complete rule set.
        """
        defaults = cls()
        values = dict(values or {})
        for store_key, attr in SETTING_KEYS.items():
            if store_key in values and attr not in values:
                values[attr] = values[store_key]
        parsed = {}
        for f in fields(cls):
            default = getattr(defaults, f.name)
            parsed[f.name] = _as_number(values.get(f.name), default)
        parsed["bulk_threshold"] = int(parsed["bulk_threshold"])
        return cls(**parsed)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class BreakdownLine:
    description: str
    amount: int


@dataclass
class PriceQuote:
    price: int
    method: str
    breakdown: List[BreakdownLine] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "price": self.price,
            "method": self.method,
            "breakdown": [asdict(line) for line in self.breakdown],
        }


def _fmt_rate(rate: Union[int, float]) -> str:
    return f"{rate:g}"


class PricingEngine:
    def __init__(self, settings: Optional[Union[PricingSettings, Mapping[str, Any]]] = None):
        self._settings = self._coerce(settings)

    @staticmethod
    def _coerce(settings: Optional[Union[PricingSettings, Mapping[str, Any]]]) -> PricingSettings:
        if isinstance(settings, PricingSettings):
            return PricingSettings(**settings.to_dict())
        return PricingSettings.from_dict(settings)

    @property
    def settings(self) -> PricingSettings:
        return self._settings

    def update_settings(self, settings: Union[PricingSettings, Mapping[str, Any]]) -> PricingSettings:
        """Replace the whole rule set; keys left out revert to their defaults."""
        self._settings = self._coerce(settings)
        logger.info("Pricing settings replaced: %s", self._settings.to_dict())
        return self._settings

    def quote(self, content_type: str, item_count: int, size_gb: float, is_download: bool = False) -> PriceQuote:
        item_count = int(item_count or 0)
        size_gb = float(size_gb or 0)
        if item_count < 0:
            raise PricingError(f"item_count must not be negative (got {item_count})")
        if size_gb < 0:
            raise PricingError(f"size_gb must not be negative (got {size_gb})")

        # Read once so a concurrent replacement cannot mix two rule sets
        s = self._settings

        # Downloads only distinguish movies from everything else
        if is_download:
            if content_type == constants.CONTENT_MOVIES:
                amount = item_count * s.download_movie_price
                line = f"Download {item_count} movies x {_fmt_rate(s.download_movie_price)}"
            else:
                amount = size_gb * s.download_series_price_per_gb
                line = f"Download {size_gb:.2f} GB x {_fmt_rate(s.download_series_price_per_gb)}"
            return self._single_line(line, amount, constants.METHOD_DOWNLOAD)

        if content_type not in KNOWN_CONTENT_TYPES:
            raise UnknownContentTypeError(content_type)
        if content_type == constants.CONTENT_MOVIES:
            if item_count <= s.bulk_threshold:
                amount = item_count * s.single_movie_price
                line = f"{item_count} movies x {_fmt_rate(s.single_movie_price)}"
                return self._single_line(line, amount, constants.METHOD_PER_ITEM)
            amount = size_gb * s.bulk_price_per_gb
            line = f"{item_count} movies, {size_gb:.2f} GB x {_fmt_rate(s.bulk_price_per_gb)}"
        elif content_type == constants.CONTENT_SERIES:
            amount = size_gb * s.series_price_per_gb
            line = f"Series: {size_gb:.2f} GB x {_fmt_rate(s.series_price_per_gb)}"
        elif content_type == constants.CONTENT_MIXED:
            amount = size_gb * s.bulk_price_per_gb
            line = f"Mixed content: {size_gb:.2f} GB x {_fmt_rate(s.bulk_price_per_gb)}"
        else:
            amount = size_gb * s.bulk_price_per_gb
            line = f"Programs: {size_gb:.2f} GB x {_fmt_rate(s.bulk_price_per_gb)}"
        return self._single_line(line, amount, constants.METHOD_PER_GB)

    @staticmethod
    def _single_line(description: str, amount: float, method: str) -> PriceQuote:
        rounded = round_currency(amount)
        breakdown = [BreakdownLine(description=description, amount=rounded)]
        return PriceQuote(price=sum(line.amount for line in breakdown), method=method, breakdown=breakdown)

    def quick_estimate(self, kind: str, value: float) -> int:
        """
        Counter-side estimate without a full quote.

        kind is one of movies_count, size_gb, download_movies or
        download_series_gb; anything else estimates 0.
        """
        s = self._settings
        if kind == "movies_count":
            if value <= s.bulk_threshold:
                return round_currency(value * s.single_movie_price)
            return round_currency(value * ESTIMATED_GB_PER_MOVIE * s.bulk_price_per_gb)
        if kind == "size_gb":
            return round_currency(value * s.bulk_price_per_gb)
        if kind == "download_movies":
            return round_currency(value * s.download_movie_price)
        if kind == "download_series_gb":
            return round_currency(value * s.download_series_price_per_gb)
        return 0
