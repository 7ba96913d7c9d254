"""Application services for market balances, prices and market listings."""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Dict, Iterable, List, Optional, Protocol, Sequence, Tuple

from tdexa import domain, loader
from tdexa.jobs import Scheduler
from tdexa.types import (
    Balance,
    Market,
    MarketBalance,
    MarketPrice,
    MarketProvider,
    MarketsBalances,
    MarketsPrices,
    Price,
    TimeRange,
)

log = logging.getLogger(__name__)

_CENT = Decimal("0.01")
_ZERO = Decimal(0)

ReferencePrices = Tuple[Decimal, Decimal]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _domain_page(page: Optional[domain.Page]) -> domain.Page:
    if page is None:
        return domain.new_page(0, 0)
    return domain.new_page(page.number, page.size)


def _every_minutes(period: object) -> str:
    return f"@every {period}m"


def _loader_market(market: domain.Market) -> loader.Market:
    return loader.Market(url=market.url, quote_asset=market.quote_asset, base_asset=market.base_asset)


def _run_for_each(target: Callable[[domain.Market], None], markets: Iterable[domain.Market]) -> None:
    for market in markets:
        threading.Thread(target=target, args=(market,), daemon=True).start()


class _JobScheduler(Protocol):
    def add_job(self, expression: str, job: Callable[[], None]) -> int:
        """Schedule a job."""

    def start(self) -> None:
        """Start running jobs."""


class _BalanceSource(Protocol):
    def fetch_balance(self, market: loader.Market) -> loader.Balance:
        """Return the current balances of a market."""


class _PriceSource(Protocol):
    def fetch_price(self, market: loader.Market) -> loader.Price:
        """Return the current prices of a market."""


class MarketBalanceService:
    """Stores, queries and periodically collects market balances."""

    def __init__(
        self,
        balance_repository: domain.MarketBalanceRepository,
        market_repository: domain.MarketRepository,
        market_loader: _BalanceSource,
        job_period_in_minutes: object,
        scheduler: Optional[_JobScheduler] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._balance_repository = balance_repository
        self._market_repository = market_repository
        self._loader = market_loader
        self._scheduler = scheduler if scheduler is not None else Scheduler()
        self._clock = clock
        self.cron_expression = _every_minutes(job_period_in_minutes)

    def insert_balance(self, market_balance: MarketBalance) -> None:
        """Validate a balance sample and store it."""
        market_balance.validate()
        self._balance_repository.insert_balance(market_balance.to_domain())

    def get_balances(
        self, time_range: TimeRange, page: Optional[domain.Page], *market_ids: str
    ) -> MarketsBalances:
        """Return balances in the time range, for the given markets or for all."""
        start, end = time_range.start_and_end(self._clock())
        stored = self._balance_repository.get_balances_for_markets(
            start, end, _domain_page(page), *market_ids
        )
        result: Dict[str, List[Balance]] = {
            market_id: [
                Balance(
                    base_balance=b.base_balance,
                    base_asset=b.base_asset,
                    quote_balance=b.quote_balance,
                    quote_asset=b.quote_asset,
                    time=b.time,
                )
                for b in balances
            ]
            for market_id, balances in stored.items()
        }
        return MarketsBalances(markets_balances=result)

    def start_fetching_balances_job(self) -> None:
        """Schedule periodic collection of balances for all markets."""
        self._scheduler.add_job(self.cron_expression, self.fetch_balances_for_all_markets)
        self._scheduler.start()

    def fetch_balances_for_all_markets(self) -> None:
        """Collect balances of every known market, one background thread per market."""
        log.info("job FetchBalancesForAllMarkets at: %s", self._clock())
        try:
            markets = self._market_repository.get_all_markets()
        except Exception as exc:
            log.error("FetchBalancesForAllMarkets -> GetAllMarkets: %s", exc)
            return
        _run_for_each(self.fetch_and_insert_balance, markets)

    def fetch_and_insert_balance(self, market: domain.Market) -> None:
        """Fetch one market's balance and store it, logging failures."""
        try:
            balance = self._loader.fetch_balance(_loader_market(market))
        except Exception as exc:
            log.error("FetchAndInsertBalance -> FetchBalance: %s", exc)
            return
        try:
            self.insert_balance(
                MarketBalance(
                    market_id=str(market.id),
                    base_balance=balance.base_balance,
                    base_asset=market.base_asset,
                    quote_balance=balance.quote_balance,
                    quote_asset=market.quote_asset,
                    time=self._clock(),
                )
            )
        except Exception as exc:
            log.error("FetchAndInsertBalance -> InsertBalance: %s", exc)


class MarketPriceService:
    """Stores, queries and periodically collects market prices."""

    def __init__(
        self,
        price_repository: domain.MarketPriceRepository,
        market_repository: domain.MarketRepository,
        market_loader: _PriceSource,
        job_period_in_minutes: object,
        rater: domain.RateService,
        scheduler: Optional[_JobScheduler] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._price_repository = price_repository
        self._market_repository = market_repository
        self._loader = market_loader
        self._rater = rater
        self._scheduler = scheduler if scheduler is not None else Scheduler()
        self._clock = clock
        self.cron_expression = _every_minutes(job_period_in_minutes)

    def insert_price(self, market_price: MarketPrice) -> None:
        """Validate a price sample and store it."""
        market_price.validate()
        self._price_repository.insert_price(market_price.to_domain())

    def get_prices(
        self,
        time_range: TimeRange,
        page: Optional[domain.Page],
        reference_currency: str,
        *market_ids: str,
    ) -> MarketsPrices:
        """Return prices in the time range, optionally valued in a reference currency."""
        if reference_currency:
            if not self._rater.is_fiat_symbol_supported(reference_currency):
                raise ValueError(f"reference currency {reference_currency} is not supported")

        start, end = time_range.start_and_end(self._clock())
        stored = self._price_repository.get_prices_for_markets(
            start, end, _domain_page(page), *market_ids
        )

        # Reference prices per asset pair, so each pair is converted once.
        cache: Dict[str, ReferencePrices] = {}
        result: Dict[str, List[Price]] = {}
        for market_id, prices in stored.items():
            converted = []
            for p in prices:
                base_ref, quote_ref = _ZERO, _ZERO
                if reference_currency:
                    base_ref, quote_ref = self.prices_in_reference_currency(
                        p, reference_currency, cache
                    )
                converted.append(
                    Price(
                        base_price=p.base_price,
                        base_asset=p.base_asset,
                        quote_price=p.quote_price,
                        quote_asset=p.quote_asset,
                        time=p.time,
                        base_referent_price=base_ref,
                        quote_referent_price=quote_ref,
                    )
                )
            result[market_id] = converted
        return MarketsPrices(markets_prices=result)

    def _is_fiat(self, symbol: str) -> bool:
        try:
            return bool(self._rater.is_fiat_symbol_supported(symbol))
        except Exception:
            return False

    def _convert(self, source: str, target: str) -> Decimal:
        try:
            return Decimal(self._rater.convert_currency(source, target))
        except Exception:
            return _ZERO

    def prices_in_reference_currency(
        self,
        market_price: domain.MarketPrice,
        reference_currency: str,
        cache: Dict[str, ReferencePrices],
    ) -> ReferencePrices:
        """Value the base and quote prices of a sample in the reference currency."""
        pair = f"{market_price.base_asset}_{market_price.quote_asset}"
        if pair in cache:
            return cache[pair]

        base_ticker = self._rater.get_asset_currency(market_price.base_asset)
        quote_ticker = self._rater.get_asset_currency(market_price.quote_asset)
        base_stable = self._is_fiat(base_ticker)
        quote_stable = self._is_fiat(quote_ticker)

        if base_stable:
            unit = self._convert(base_ticker, reference_currency)
            if unit:
                base = unit * market_price.base_price
            else:
                base = self._convert(quote_ticker, reference_currency)
            quote = base * market_price.quote_price
        elif quote_stable:
            unit = self._convert(quote_ticker, reference_currency)
            if unit:
                quote = unit * market_price.quote_price
            else:
                quote = self._convert(base_ticker, reference_currency)
            base = quote * market_price.base_price
        else:
            base = self._convert(base_ticker, reference_currency)
            quote = self._convert(quote_ticker, reference_currency)

        base = base.quantize(_CENT, rounding=ROUND_HALF_UP)
        quote = quote.quantize(_CENT, rounding=ROUND_HALF_UP)
        if base and quote:
            cache[pair] = (base, quote)
        return base, quote

    def start_fetching_prices_job(self) -> None:
        """Schedule periodic collection of prices for all markets."""
        self._scheduler.add_job(self.cron_expression, self.fetch_prices_for_all_markets)
        self._scheduler.start()

    def fetch_prices_for_all_markets(self) -> None:
        """Collect prices of every known market, one background thread per market."""
        log.info("job FetchPricesForAllMarkets at: %s", self._clock())
        try:
            markets = self._market_repository.get_all_markets()
        except Exception as exc:
            log.error("FetchPricesForAllMarkets -> GetAllMarkets: %s", exc)
            return
        _run_for_each(self.fetch_and_insert_price, markets)

    def fetch_and_insert_price(self, market: domain.Market) -> None:
        """Fetch one market's price and store it, logging failures."""
        try:
            price = self._loader.fetch_price(_loader_market(market))
        except Exception as exc:
            log.error("FetchAndInsertPrice -> FetchPrice: %s", exc)
            return
        try:
            self.insert_price(
                MarketPrice(
                    market_id=str(market.id),
                    base_price=price.base_price,
                    base_asset=market.base_asset,
                    quote_price=price.quote_price,
                    quote_asset=market.quote_asset,
                    time=self._clock(),
                )
            )
        except Exception as exc:
            log.error("FetchAndInsertPrice -> InsertPrice: %s", exc)


class MarketService:
    """Lists stored markets matching provider filters."""

    def __init__(self, market_repository: domain.MarketRepository) -> None:
        self._market_repository = market_repository

    def list_markets(
        self, providers: Sequence[MarketProvider], page: Optional[domain.Page]
    ) -> List[Market]:
        """Validate the filters and return one page of matching markets."""
        filters = []
        for provider in providers:
            provider.validate()
            filters.append(provider.to_domain())
        markets = self._market_repository.get_all_markets_for_filter(filters, _domain_page(page))
        return [
            Market(id=m.id, url=m.url, base_asset=m.base_asset, quote_asset=m.quote_asset)
            for m in markets
        ]