"""Core domain entities and the repository and rating interfaces."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Protocol, Sequence, runtime_checkable

DEFAULT_PAGE_NUMBER = 1
DEFAULT_PAGE_SIZE = 10


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Market:
    """A market offered by a liquidity provider."""

    id: int = 0
    provider_name: str = ""
    url: str = ""
    base_asset: str = ""
    quote_asset: str = ""


@dataclass(frozen=True)
class Filter:
    """Selects markets by provider url and asset pair."""

    url: str = ""
    base_asset: str = ""
    quote_asset: str = ""


@dataclass
class MarketBalance:
    """Balances of a market at a moment in time."""

    market_id: str = ""
    base_balance: int = 0
    base_asset: str = ""
    quote_balance: int = 0
    quote_asset: str = ""
    time: datetime = field(default_factory=_now)


@dataclass
class MarketPrice:
    """Prices of a market at a moment in time."""

    market_id: str = ""
    base_price: Decimal = Decimal(0)
    base_asset: str = ""
    quote_price: Decimal = Decimal(0)
    quote_asset: str = ""
    time: datetime = field(default_factory=_now)


@dataclass(frozen=True)
class Page:
    """A page of results, numbered from 1."""

    number: int = DEFAULT_PAGE_NUMBER
    size: int = DEFAULT_PAGE_SIZE


def new_page(page_number: int, page_size: int) -> Page:
    """Build a page, replacing non-positive values with the defaults."""
    return Page(
        number=page_number if page_number > 0 else DEFAULT_PAGE_NUMBER,
        size=page_size if page_size > 0 else DEFAULT_PAGE_SIZE,
    )


class CurrencyNotFoundError(LookupError):
    """Raised when a currency conversion has no known rate."""

    def __init__(self, message: str = "can't convert currencies, currency not found") -> None:
        super().__init__(message)


@runtime_checkable
class MarketRepository(Protocol):
    """Storage of known markets."""

    def insert_market(self, market: Market) -> None:
        """Store a market; a duplicate is silently ignored."""

    def get_all_markets(self) -> List[Market]:
        """Return every stored market."""

    def get_all_markets_for_filter(self, filters: Sequence[Filter], page: Page) -> List[Market]:
        """Return one page of the markets matching any of the filters."""


@runtime_checkable
class MarketBalanceRepository(Protocol):
    """Time series storage of market balances."""

    def insert_balance(self, balance: MarketBalance) -> None:
        """Store one balance sample."""

    def get_balances_for_markets(
        self, start_time: datetime, end_time: datetime, page: Page, *market_ids: str
    ) -> Dict[str, List[MarketBalance]]:
        """Return balances in the time range, grouped by market id."""


@runtime_checkable
class MarketPriceRepository(Protocol):
    """Time series storage of market prices."""

    def insert_price(self, price: MarketPrice) -> None:
        """Store one price sample."""

    def get_prices_for_markets(
        self, start_time: datetime, end_time: datetime, page: Page, *market_ids: str
    ) -> Dict[str, List[MarketPrice]]:
        """Return prices in the time range, grouped by market id."""


@runtime_checkable
class RateService(Protocol):
    """Source of exchange rates between currencies."""

    def convert_currency(self, source: str, target: str) -> Decimal:
        """Value of one unit of source expressed in target."""

    def is_fiat_symbol_supported(self, symbol: str) -> bool:
        """Whether the rate provider knows the fiat symbol."""

    def get_asset_currency(self, asset_id: str) -> str:
        """The currency symbol configured for an asset."""