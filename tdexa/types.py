"""Application level request and response types with their validation."""

from __future__ import annotations

import binascii
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from enum import IntEnum
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union
from urllib.parse import urlsplit

from tdexa import domain
from tdexa.errors import Code, HexagonalError, application_layer_error

START_YEAR = 2022
INVALID_TIME_FORMAT = "fromTime must be valid RFC3339 format"

_ZERO_TIME = datetime.min.replace(tzinfo=timezone.utc)

_RFC3339 = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2})T(\d{2}):(\d{2}):(\d{2})(\.\d+)?(Z|[+-]\d{2}:\d{2})$"
)

_MAX_URL_LENGTH = 2083
_MIN_URL_LENGTH = 3
_URL = re.compile(
    r"^(?:(?:ftp|tcp|udp|wss?|https?)://)?"
    r"(?:\S+(?::\S*)?@)?"
    r"(?:\d{1,3}(?:\.\d{1,3}){3}"
    r"|\[[0-9a-fA-F:.]+\]"
    r"|(?:[^\W_](?:[\w-]*[^\W_])?\.)*[^\W_](?:[\w-]*[^\W_])?)"
    r"\.?(?::\d{1,5})?(?:[/?#]\S*)?$"
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class PredefinedPeriod(IntEnum):
    """Named time windows ending now."""

    NIL = 0
    LAST_HOUR = 1
    LAST_DAY = 2
    LAST_MONTH = 3
    LAST_THREE_MONTHS = 4
    YEAR_TO_DATE = 5
    ALL = 6


class ValidationError(ValueError):
    """Field validation failures, keyed by field name."""

    def __init__(self, errors: Mapping[str, Union[BaseException, str]]) -> None:
        self.errors: Dict[str, str] = {key: str(value) for key, value in errors.items()}
        super().__init__(str(self))

    def __str__(self) -> str:
        parts = [f"{key}: {self.errors[key]}" for key in sorted(self.errors)]
        return "; ".join(parts) + "."


Rule = Callable[[Any], None]


def _validate_fields(*rules: Tuple[str, Any, Rule]) -> None:
    errors: Dict[str, BaseException] = {}
    for name, value, rule in rules:
        try:
            rule(value)
        except (ValueError, HexagonalError) as exc:
            errors[name] = exc
    if errors:
        raise ValidationError(errors)


def _required(value: Any) -> None:
    if value is None or value == "":
        raise ValueError("cannot be blank")


def _is_url(value: str) -> bool:
    if (
        not value
        or len(value) >= _MAX_URL_LENGTH
        or len(value) <= _MIN_URL_LENGTH
        or value.startswith(".")
    ):
        return False
    candidate = value
    if ":" in value and "://" not in value:
        candidate = "http://" + value
    try:
        parts = urlsplit(candidate)
    except ValueError:
        return False
    host = parts.netloc.rpartition("@")[2]
    if host.startswith("."):
        return False
    if host == "" and parts.path and "." not in parts.path:
        return False
    return _URL.match(value) is not None


def _url(value: Any) -> None:
    if value is None or value == "":
        return
    if not isinstance(value, str) or not _is_url(value):
        raise ValueError("must be a valid URL")


def validate_asset_string(asset: Any) -> None:
    """Check that an asset is a 32 byte hex string."""
    if not isinstance(asset, str):
        raise ValueError("must be a valid asset string")
    try:
        raw = binascii.unhexlify(asset)
    except (binascii.Error, ValueError):
        raise ValueError("asset is not in hex format") from None
    if len(raw) != 32:
        raise ValueError("asset length is invalid")


def _parse_rfc3339(value: str) -> datetime:
    match = _RFC3339.match(value)
    if match is None:
        raise ValueError(f"not an RFC3339 time: {value!r}")
    year, month, day, hour, minute, second, fraction, zone = match.groups()
    microsecond = int((fraction[1:] + "000000")[:6]) if fraction else 0
    if zone == "Z":
        tz = timezone.utc
    else:
        sign = 1 if zone[0] == "+" else -1
        hours, minutes = int(zone[1:3]), int(zone[4:6])
        if hours > 23 or minutes > 59:
            raise ValueError(f"invalid time zone offset: {zone}")
        tz = timezone(sign * timedelta(hours=hours, minutes=minutes))
    return datetime(
        int(year), int(month), int(day), int(hour), int(minute), int(second), microsecond, tzinfo=tz
    )


def validate_time_format(value: Any) -> None:
    """Check that a value is an RFC3339 time string."""
    if not isinstance(value, str):
        raise ValueError("must be a valid time string")
    try:
        _parse_rfc3339(value)
    except ValueError:
        raise application_layer_error(Code.INVALID_REQUEST, INVALID_TIME_FORMAT) from None


def _add_months(moment: datetime, months: int) -> datetime:
    # Overflowing days roll into the following month, e.g. Mar 31 - 1 month = Mar 3.
    year, month = divmod(moment.year * 12 + moment.month - 1 + months, 12)
    first = moment.replace(year=year, month=month + 1, day=1)
    return first + timedelta(days=moment.day - 1)


@dataclass
class CustomPeriod:
    """An explicit time window given as RFC3339 strings."""

    start_date: str = ""
    end_date: str = ""

    def validate(self) -> None:
        """Raise ValidationError unless both dates are RFC3339 times."""
        _validate_fields(
            ("StartDate", self.start_date, validate_time_format),
            ("EndDate", self.end_date, validate_time_format),
        )


@dataclass
class TimeRange:
    """Either a predefined or a custom period, never both."""

    predefined_period: Optional[Union[PredefinedPeriod, int]] = None
    custom_period: Optional[CustomPeriod] = None

    def validate(self) -> None:
        """Raise unless exactly one valid period is given."""
        if self.custom_period is None and self.predefined_period is None:
            raise application_layer_error(
                Code.INVALID_REQUEST,
                "both PredefinedPeriod period and CustomPeriod cant be null",
            )
        if self.custom_period is not None and self.predefined_period is not None:
            raise application_layer_error(
                Code.INVALID_REQUEST,
                "both PredefinedPeriod period and CustomPeriod provided, please provide only one",
            )
        if self.custom_period is not None:
            self.custom_period.validate()
        if self.predefined_period is not None and int(self.predefined_period) > PredefinedPeriod.ALL:
            raise application_layer_error(
                Code.INVALID_REQUEST,
                f"PredefinedPeriod cant be > {int(PredefinedPeriod.ALL)}",
            )

    def start_and_end(self, now: datetime) -> Tuple[datetime, datetime]:
        """Return the window's start and end, measured from the given moment."""
        self.validate()

        if self.custom_period is not None:
            start = _parse_rfc3339(self.custom_period.start_date)
            end = now
            if self.custom_period.end_date:
                end = _parse_rfc3339(self.custom_period.end_date)
            return start, end

        period = int(self.predefined_period)
        if period == PredefinedPeriod.LAST_HOUR:
            start = now - timedelta(hours=1)
        elif period == PredefinedPeriod.LAST_DAY:
            start = now - timedelta(days=1)
        elif period == PredefinedPeriod.LAST_MONTH:
            start = _add_months(now, -1)
        elif period == PredefinedPeriod.LAST_THREE_MONTHS:
            start = _add_months(now, -3)
        elif period == PredefinedPeriod.YEAR_TO_DATE:
            start = datetime(now.year, 1, 1, tzinfo=timezone.utc)
        elif period == PredefinedPeriod.ALL:
            start = datetime(START_YEAR, 1, 1, tzinfo=timezone.utc)
        else:
            start = _ZERO_TIME
        return start, now


@dataclass
class MarketBalance:
    """A balance sample to be stored for a market."""

    market_id: str = ""
    base_balance: int = 0
    base_asset: str = ""
    quote_balance: int = 0
    quote_asset: str = ""
    time: datetime = field(default_factory=_now)

    def validate(self) -> None:
        """Raise ValidationError on a blank market id or malformed assets."""
        _validate_fields(
            ("MarketID", self.market_id, _required),
            ("BaseAsset", self.base_asset, validate_asset_string),
            ("QuoteAsset", self.quote_asset, validate_asset_string),
        )

    def to_domain(self) -> domain.MarketBalance:
        """Validate and convert to the domain entity."""
        self.validate()
        return domain.MarketBalance(
            market_id=self.market_id,
            base_balance=self.base_balance,
            base_asset=self.base_asset,
            quote_balance=self.quote_balance,
            quote_asset=self.quote_asset,
            time=self.time,
        )


@dataclass
class MarketPrice:
    """A price sample to be stored for a market."""

    market_id: str = ""
    base_price: Decimal = Decimal(0)
    base_asset: str = ""
    quote_price: Decimal = Decimal(0)
    quote_asset: str = ""
    time: datetime = field(default_factory=_now)

    def validate(self) -> None:
        """Raise ValidationError on a blank market id or malformed assets."""
        _validate_fields(
            ("MarketID", self.market_id, _required),
            ("BaseAsset", self.base_asset, validate_asset_string),
            ("QuoteAsset", self.quote_asset, validate_asset_string),
        )

    def to_domain(self) -> domain.MarketPrice:
        """Validate and convert to the domain entity."""
        self.validate()
        return domain.MarketPrice(
            market_id=self.market_id,
            base_price=self.base_price,
            base_asset=self.base_asset,
            quote_price=self.quote_price,
            quote_asset=self.quote_asset,
            time=self.time,
        )


@dataclass
class Balance:
    """A balance sample returned to callers."""

    base_balance: int
    base_asset: str
    quote_balance: int
    quote_asset: str
    time: datetime


@dataclass
class Price:
    """A price sample returned to callers, with optional reference prices."""

    base_price: Decimal
    base_asset: str
    quote_price: Decimal
    quote_asset: str
    time: datetime
    base_referent_price: Decimal = Decimal(0)
    quote_referent_price: Decimal = Decimal(0)


@dataclass
class MarketsBalances:
    """Balances grouped by market id."""

    markets_balances: Dict[str, List[Balance]] = field(default_factory=dict)


@dataclass
class MarketsPrices:
    """Prices grouped by market id."""

    markets_prices: Dict[str, List[Price]] = field(default_factory=dict)


@dataclass
class MarketProvider:
    """A market filter given by provider url and asset pair."""

    url: str = ""
    base_asset: str = ""
    quote_asset: str = ""

    def validate(self) -> None:
        """Raise ValidationError on a malformed url or assets."""
        _validate_fields(
            ("Url", self.url, _url),
            ("BaseAsset", self.base_asset, validate_asset_string),
            ("QuoteAsset", self.quote_asset, validate_asset_string),
        )

    def to_domain(self) -> domain.Filter:
        """Convert to a repository filter."""
        return domain.Filter(url=self.url, base_asset=self.base_asset, quote_asset=self.quote_asset)


@dataclass
class Market:
    """A market as listed to callers."""

    id: int
    url: str
    base_asset: str
    quote_asset: str