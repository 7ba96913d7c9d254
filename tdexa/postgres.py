"""Relational storage of known markets."""

from __future__ import annotations

import re
import sqlite3
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Tuple

from tdexa import domain

UNIQUE_VIOLATION = "23505"

_GET_ALL_MARKETS = "SELECT market_id, provider_name, url, base_asset, quote_asset FROM market"
_INSERT_MARKET = (
    "INSERT INTO market (provider_name,url,base_asset,quote_asset) VALUES ($1, $2, $3, $4)"
)
_PLACEHOLDER = re.compile(r"\$(\d+)")
_PARAMSTYLES = ("format", "qmark", "numeric", "dollar")


@dataclass
class DbConfig:
    """Connection settings of the market database."""

    db_user: str
    db_password: str
    db_host: str
    db_port: int
    db_name: str
    migration_source_url: str = ""
    db_insecure: bool = False
    aws_region: str = ""


def insecure_data_source(config: DbConfig) -> str:
    """Connection URL without TLS, authenticated by user and password."""
    return (
        f"postgresql://{config.db_user}:{config.db_password}@{config.db_host}:"
        f"{int(config.db_port)}/{config.db_name}?sslmode=disable"
    )


def _parse_filter(filters: Sequence[domain.Filter]) -> Tuple[str, List[Any]]:
    conditions = []
    values: List[Any] = []
    for index, item in enumerate(filters):
        n = index * 3
        conditions.append(f"(url=${n + 1} AND base_asset=${n + 2} AND quote_asset=${n + 3})")
        values.extend([item.url, item.base_asset, item.quote_asset])
    if not conditions:
        return "", values
    return "WHERE " + " OR ".join(conditions), values


def generate_query_and_values(
    filters: Optional[Sequence[domain.Filter]],
) -> Tuple[str, List[Any]]:
    """SELECT over markets matching any filter, with numbered placeholders and their values."""
    condition, values = _parse_filter(list(filters or []))
    query = "SELECT * FROM market"
    if condition:
        query = f"{query} {condition}"
    return query, values


def _is_unique_violation(exc: BaseException) -> bool:
    code = getattr(exc, "pgcode", None) or getattr(exc, "sqlstate", None)
    if code == UNIQUE_VIOLATION:
        return True
    if type(exc).__name__ == "UniqueViolation":
        return True
    return isinstance(exc, sqlite3.IntegrityError) and "UNIQUE" in str(exc)


class PostgresMarketRepository:
    """Market repository over a DB-API connection to the market table."""

    def __init__(self, connection: Any, paramstyle: str = "format") -> None:
        if paramstyle not in _PARAMSTYLES:
            raise ValueError(f"unsupported paramstyle {paramstyle!r}")
        self._conn = connection
        self._paramstyle = paramstyle

    def _bind(self, query: str) -> str:
        if self._paramstyle == "dollar":
            return query
        if self._paramstyle == "numeric":
            return _PLACEHOLDER.sub(r":\1", query)
        marker = "%s" if self._paramstyle == "format" else "?"
        return _PLACEHOLDER.sub(lambda _: marker, query)

    def _fetch(self, query: str, values: Sequence[Any] = ()) -> List[tuple]:
        cursor = self._conn.cursor()
        try:
            cursor.execute(self._bind(query), tuple(values))
            return list(cursor.fetchall())
        finally:
            cursor.close()

    def insert_market(self, market: domain.Market) -> None:
        """Store a market; a duplicate is silently ignored."""
        cursor = self._conn.cursor()
        try:
            cursor.execute(
                self._bind(_INSERT_MARKET),
                (market.provider_name, market.url, market.base_asset, market.quote_asset),
            )
        except Exception as exc:
            self._conn.rollback()
            if _is_unique_violation(exc):
                return
            raise
        finally:
            cursor.close()
        self._conn.commit()

    def get_all_markets(self) -> List[domain.Market]:
        """Return every stored market."""
        return [
            domain.Market(
                id=int(market_id) if market_id is not None else 0,
                provider_name=provider_name,
                url=url,
                base_asset=base_asset,
                quote_asset=quote_asset,
            )
            for market_id, provider_name, url, base_asset, quote_asset in self._fetch(
                _GET_ALL_MARKETS
            )
        ]

    def get_all_markets_for_filter(
        self, filters: Optional[Sequence[domain.Filter]], page: domain.Page
    ) -> List[domain.Market]:
        """Return one page of markets matching any filter, newest first."""
        limit = page.size
        offset = page.number * page.size - page.size
        pagination = f" ORDER by market.market_id DESC LIMIT {limit} OFFSET {offset}"
        query, values = generate_query_and_values(filters)
        rows = self._fetch(f"{query} {pagination}", values)
        return [
            domain.Market(
                id=int(market_id),
                provider_name=provider_name,
                url=url,
                base_asset=base_asset,
                quote_asset=quote_asset,
            )
            for market_id, provider_name, url, base_asset, quote_asset in rows
        ]

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()