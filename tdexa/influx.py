"""Time series storage of market balances and prices in InfluxDB."""

from __future__ import annotations

import csv
import io
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, Iterable, Iterator, List, Optional

import requests

from tdexa import domain

MARKET_TAG = "market_id"
MARKET_PRICE_TABLE = "market_price"
MARKET_BALANCE_TABLE = "market_balance"
BASE_ASSET = "base_asset"
BASE_BALANCE = "base_balance"
BASE_PRICE = "base_price"
QUOTE_ASSET = "quote_asset"
QUOTE_BALANCE = "quote_balances"
QUOTE_PRICE = "quote_price"

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_TIMESTAMP = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2})T(\d{2}):(\d{2}):(\d{2})(?:\.(\d+))?(Z|[+-]\d{2}:\d{2})$"
)


class InfluxError(RuntimeError):
    """The database answered a request with an error status."""


@dataclass(frozen=True)
class InfluxConfig:
    """Connection settings for the analytics bucket."""

    org: str
    auth_token: str
    db_url: str
    analytics_bucket: str


def _aware(moment: datetime) -> datetime:
    return moment if moment.tzinfo is not None else moment.astimezone()


def _rfc3339(moment: datetime) -> str:
    moment = _aware(moment)
    offset = moment.utcoffset() or timedelta(0)
    if offset == timedelta(0):
        suffix = "Z"
    else:
        sign = "-" if offset < timedelta(0) else "+"
        minutes = abs(int(offset.total_seconds())) // 60
        suffix = f"{sign}{minutes // 60:02d}:{minutes % 60:02d}"
    return moment.strftime("%Y-%m-%dT%H:%M:%S") + suffix


def _unix_nanos(moment: datetime) -> int:
    delta = _aware(moment).astimezone(timezone.utc) - _EPOCH
    return (delta.days * 86400 + delta.seconds) * 10**9 + delta.microseconds * 1000


def _parse_time(value: str) -> datetime:
    match = _TIMESTAMP.match(value)
    if match is None:
        raise ValueError(f"invalid time value: {value!r}")
    year, month, day, hour, minute, second, fraction, zone = match.groups()
    micro = int((fraction + "000000")[:6]) if fraction else 0
    if zone == "Z":
        tz = timezone.utc
    else:
        sign = 1 if zone[0] == "+" else -1
        tz = timezone(sign * timedelta(hours=int(zone[1:3]), minutes=int(zone[4:6])))
    return datetime(
        int(year), int(month), int(day), int(hour), int(minute), int(second), micro, tzinfo=tz
    )


def _convert(value: str, datatype: str) -> Any:
    if value == "":
        return None
    if datatype in ("long", "unsignedLong"):
        return int(value)
    if datatype == "double":
        return float(value)
    if datatype == "boolean":
        return value == "true"
    if datatype.startswith("dateTime"):
        return _parse_time(value)
    return value


def _parse_annotated_csv(text: str) -> Iterator[Dict[str, Any]]:
    types: List[str] = []
    defaults: List[str] = []
    header: Optional[List[str]] = None
    for row in csv.reader(io.StringIO(text)):
        if not row or all(cell == "" for cell in row):
            header, types, defaults = None, [], []
            continue
        first = row[0]
        if first.startswith("#"):
            if first == "#datatype":
                types = row
            elif first == "#default":
                defaults = row
            continue
        if header is None:
            header = row
            continue
        record: Dict[str, Any] = {}
        for index, (name, value) in enumerate(zip(header, row)):
            if index == 0:
                continue
            if value == "" and index < len(defaults):
                value = defaults[index]
            datatype = types[index] if index < len(types) else "string"
            record[name] = _convert(value, datatype)
        yield record


def _escape_key(text: str) -> str:
    return text.replace(",", "\\,").replace("=", "\\=").replace(" ", "\\ ")


def _escape_measurement(text: str) -> str:
    return text.replace(",", "\\,").replace(" ", "\\ ")


def _field_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return f"{value}i"
    if isinstance(value, float):
        return repr(value)
    escaped = str(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def _line(measurement: str, tags: Dict[str, str], fields: Dict[str, Any], moment: datetime) -> str:
    tag_part = "".join(f",{_escape_key(k)}={_escape_key(v)}" for k, v in tags.items())
    field_part = ",".join(f"{_escape_key(k)}={_field_value(v)}" for k, v in fields.items())
    return f"{_escape_measurement(measurement)}{tag_part} {field_part} {_unix_nanos(moment)}"


def market_ids_filter(market_ids: Iterable[str], table: str) -> str:
    """Flux filter matching the table's rows, restricted to the given market ids if any."""
    ids = list(market_ids)
    if not ids:
        return f'(r._measurement == "{table}")'
    return " or ".join(
        f'(r._measurement == "{table}" and r.market_id=="{market_id}")' for market_id in ids
    )


def build_query(
    bucket: str,
    table: str,
    start_time: datetime,
    end_time: datetime,
    page: domain.Page,
    market_ids: Iterable[str],
) -> str:
    """Flux query returning one page of a table's rows in a time range."""
    limit = page.size
    offset = page.number * page.size - page.size
    return (
        f'import "influxdata/influxdb/schema" from(bucket:"{bucket}")'
        f"|> range(start: {_rfc3339(start_time)}, stop: {_rfc3339(end_time)})"
        f"|> filter(fn: (r) => {market_ids_filter(market_ids, table)}) "
        f"|> limit(n: {limit}, offset: {offset}) |> sort() |> schema.fieldsAsCols()"
    )


def _decimal(value: Any) -> Decimal:
    return Decimal(repr(float(value)))


class InfluxService:
    """Balance and price repository over the database's HTTP API."""

    def __init__(
        self,
        config: InfluxConfig,
        session: Optional[requests.Session] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.org = config.org
        self.analytics_bucket = config.analytics_bucket
        self._url = config.db_url.rstrip("/")
        self._session = session if session is not None else requests.Session()
        self._session.headers["Authorization"] = f"Token {config.auth_token}"
        self._timeout = timeout

    def _check(self, resp: requests.Response) -> None:
        if resp.status_code not in (200, 204):
            raise InfluxError(f"status: {resp.status_code}, err: {resp.text}")

    def _write(self, line: str) -> None:
        resp = self._session.post(
            f"{self._url}/api/v2/write",
            params={"org": self.org, "bucket": self.analytics_bucket, "precision": "ns"},
            data=line.encode("utf-8"),
            headers={"Content-Type": "text/plain; charset=utf-8"},
            timeout=self._timeout,
        )
        self._check(resp)

    def _query(self, query: str) -> Iterator[Dict[str, Any]]:
        resp = self._session.post(
            f"{self._url}/api/v2/query",
            params={"org": self.org},
            json={
                "query": query,
                "type": "flux",
                "dialect": {
                    "header": True,
                    "delimiter": ",",
                    "annotations": ["datatype", "group", "default"],
                },
            },
            headers={"Accept": "application/csv"},
            timeout=self._timeout,
        )
        self._check(resp)
        return _parse_annotated_csv(resp.text)

    def insert_balance(self, balance: domain.MarketBalance) -> None:
        """Store one balance sample."""
        self._write(
            _line(
                MARKET_BALANCE_TABLE,
                {MARKET_TAG: balance.market_id},
                {
                    BASE_ASSET: balance.base_asset,
                    BASE_BALANCE: int(balance.base_balance),
                    QUOTE_ASSET: balance.quote_asset,
                    QUOTE_BALANCE: int(balance.quote_balance),
                },
                balance.time,
            )
        )

    def get_balances_for_markets(
        self, start_time: datetime, end_time: datetime, page: domain.Page, *market_ids: str
    ) -> Dict[str, List[domain.MarketBalance]]:
        """Return balances in the time range, grouped by market id."""
        query = build_query(
            self.analytics_bucket, MARKET_BALANCE_TABLE, start_time, end_time, page, market_ids
        )
        response: Dict[str, List[domain.MarketBalance]] = {}
        for record in self._query(query):
            market_id = record[MARKET_TAG]
            response.setdefault(market_id, []).append(
                domain.MarketBalance(
                    market_id=market_id,
                    base_balance=int(record[BASE_BALANCE]),
                    base_asset=record[BASE_ASSET],
                    quote_balance=int(record[QUOTE_BALANCE]),
                    quote_asset=record[QUOTE_ASSET],
                    time=record["_time"],
                )
            )
        return response

    def insert_price(self, price: domain.MarketPrice) -> None:
        """Store one price sample."""
        self._write(
            _line(
                MARKET_PRICE_TABLE,
                {MARKET_TAG: price.market_id},
                {
                    BASE_ASSET: price.base_asset,
                    BASE_PRICE: float(price.base_price),
                    QUOTE_ASSET: price.quote_asset,
                    QUOTE_PRICE: float(price.quote_price),
                },
                price.time,
            )
        )

    def get_prices_for_markets(
        self, start_time: datetime, end_time: datetime, page: domain.Page, *market_ids: str
    ) -> Dict[str, List[domain.MarketPrice]]:
        """Return prices in the time range, grouped by market id."""
        query = build_query(
            self.analytics_bucket, MARKET_PRICE_TABLE, start_time, end_time, page, market_ids
        )
        response: Dict[str, List[domain.MarketPrice]] = {}
        for record in self._query(query):
            market_id = record[MARKET_TAG]
            response.setdefault(market_id, []).append(
                domain.MarketPrice(
                    market_id=market_id,
                    base_price=_decimal(record[BASE_PRICE]),
                    base_asset=record[BASE_ASSET],
                    quote_price=_decimal(record[QUOTE_PRICE]),
                    quote_asset=record[QUOTE_ASSET],
                    time=record["_time"],
                )
            )
        return response

    def close(self) -> None:
        """Release the HTTP session."""
        self._session.close()