"""Discovery of liquidity providers and fetching of their market data."""

from __future__ import annotations

import logging
from contextlib import closing
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Iterable, List, Optional, Protocol, Sequence, Tuple

import requests

log = logging.getLogger(__name__)

ONION_MARKER = "onion"
HTTP_PREFIX = "http://"
HTTPS_PREFIX = "https://"

_PRICE_QUANTUM = Decimal("1e-8")


@dataclass(frozen=True)
class Market:
    """A market of a provider, identified by its asset pair."""

    url: str = ""
    quote_asset: str = ""
    base_asset: str = ""


@dataclass
class LiquidityProvider:
    """A provider listed in the registry, with the markets it offers."""

    name: str = ""
    endpoint: str = ""
    markets: List[Market] = field(default_factory=list)


@dataclass(frozen=True)
class Balance:
    """Current balances of a market."""

    base_balance: int
    quote_balance: int


@dataclass(frozen=True)
class Price:
    """Average prices of a market, rounded to 8 decimal places."""

    base_price: Decimal
    quote_price: Decimal


@dataclass(frozen=True)
class Endpoint:
    """Where and how to reach a provider's trade service."""

    address: str
    tls: bool = False
    onion: bool = False


class RegistryError(RuntimeError):
    """The provider registry answered with a non-success status."""


class TradeClient(Protocol):
    """Connection to a provider's trade service."""

    def list_markets(self) -> Iterable[Tuple[str, str]]:
        """Return the (base_asset, quote_asset) pair of every market."""

    def get_market_balance(self, base_asset: str, quote_asset: str) -> Tuple[int, int]:
        """Return the (base, quote) balance of a market."""

    def preview_sell(
        self, base_asset: str, quote_asset: str, amount: int, asset: str
    ) -> Iterable[Tuple[float, float]]:
        """Preview selling an amount of asset; return (base_price, quote_price) per preview."""

    def close(self) -> None:
        """Release the connection."""


ClientFactory = Callable[[Endpoint, str], TradeClient]


def parse_endpoint(endpoint: str) -> Endpoint:
    """Strip the scheme from a provider endpoint and note TLS and onion routing."""
    address = endpoint.replace(HTTP_PREFIX, "")
    tls = False
    if HTTPS_PREFIX in endpoint:
        # Providers served over https are trusted without certificate checks.
        address = endpoint.replace(HTTPS_PREFIX, "")
        tls = True
    return Endpoint(address=address, tls=tls, onion=ONION_MARKER in endpoint)


def _to_decimal(value: float) -> Decimal:
    return Decimal(repr(float(value)))


def _mean(values: Sequence[Decimal]) -> Decimal:
    return (sum(values, Decimal(0)) / len(values)).quantize(_PRICE_QUANTUM, rounding=ROUND_HALF_UP)


def average_price(previews: Iterable[Tuple[float, float]]) -> Price:
    """Average the base and quote prices of trade previews."""
    pairs = list(previews)
    if not pairs:
        raise ValueError("no trade previews to average")
    base = [_to_decimal(b) for b, _ in pairs]
    quote = [_to_decimal(q) for _, q in pairs]
    return Price(base_price=_mean(base), quote_price=_mean(quote))


def fetch_liquidity_providers(
    registry_url: str, timeout: Optional[float] = None
) -> List[LiquidityProvider]:
    """Download the list of liquidity providers from the registry."""
    resp = requests.get(registry_url, timeout=timeout)
    body = resp.text
    if resp.status_code != 200:
        raise RegistryError(f"status: {resp.status_code}, err: {body}")
    data = resp.json()
    if data is None:
        return []
    if not isinstance(data, list):
        raise ValueError("registry must hold a list of liquidity providers")
    return [
        LiquidityProvider(name=item.get("name", ""), endpoint=item.get("endpoint", ""))
        for item in data
    ]


def collect_providers_markets(
    providers: Iterable[LiquidityProvider],
    fetch_markets: Callable[[LiquidityProvider], List[Market]],
) -> List[LiquidityProvider]:
    """Attach markets to each provider, skipping providers that fail."""
    result = []
    for provider in providers:
        try:
            markets = fetch_markets(provider)
        except Exception as exc:
            log.error(
                "error while trying to fetch markets for liquidity provider: %s, err: %s",
                provider.name,
                exc,
            )
            continue
        result.append(
            LiquidityProvider(name=provider.name, endpoint=provider.endpoint, markets=list(markets))
        )
    return result


class MarketLoaderService:
    """Fetches providers, their markets, balances and prices."""

    def __init__(
        self,
        tor_proxy_url: str,
        registry_url: str,
        price_amount: int,
        client_factory: ClientFactory,
        timeout: Optional[float] = None,
    ) -> None:
        self.tor_proxy_url = tor_proxy_url
        self.registry_url = registry_url
        self.price_amount = price_amount
        self._client_factory = client_factory
        self._timeout = timeout

    def _connect(self, endpoint: str):
        return closing(self._client_factory(parse_endpoint(endpoint), self.tor_proxy_url))

    def _fetch_provider_markets(self, provider: LiquidityProvider) -> List[Market]:
        with self._connect(provider.endpoint) as client:
            return [
                Market(quote_asset=quote, base_asset=base)
                for base, quote in client.list_markets()
            ]

    def fetch_providers_markets(self) -> List[LiquidityProvider]:
        """Return every reachable provider from the registry with its markets."""
        providers = fetch_liquidity_providers(self.registry_url, self._timeout)
        return collect_providers_markets(providers, self._fetch_provider_markets)

    def fetch_balance(self, market: Market) -> Balance:
        """Return the current balances of a market."""
        with self._connect(market.url) as client:
            base, quote = client.get_market_balance(market.base_asset, market.quote_asset)
        return Balance(base_balance=int(base), quote_balance=int(quote))

    def fetch_price(self, market: Market) -> Price:
        """Return the average price of selling the configured amount of base asset."""
        with self._connect(market.url) as client:
            previews = list(
                client.preview_sell(
                    market.base_asset, market.quote_asset, self.price_amount, market.base_asset
                )
            )
        return average_price(previews)