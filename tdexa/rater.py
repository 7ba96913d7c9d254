"""Exchange rates between fiat and crypto currencies from public rate APIs."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional

import requests

from tdexa.domain import CurrencyNotFoundError

HTTP_TIMEOUT = 10
EXCHANGE_RATE_API_URL = "https://api.exchangerate.host"
COINGECKO_API_URL = "https://api.coingecko.com/api/v3"
COINGECKO_BTC_ID = "bitcoin"
BTC_SYMBOL = "btc"
LBTC_SYMBOL = "lbtc"


def _decimal(value: Any) -> Decimal:
    return Decimal(repr(float(value)))


@dataclass
class RateResponse:
    """Rates of a base currency against other currencies on a date."""

    base: str = ""
    date: str = ""
    rates: Dict[str, float] = field(default_factory=dict)

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> "RateResponse":
        """Build a response from the provider's decoded JSON."""
        rates = data.get("rates") or {}
        return cls(
            base=data.get("base") or "",
            date=data.get("date") or "",
            rates={key: float(value) for key, value in rates.items()},
        )


class ExchangeRateClient:
    """Converts between currencies and knows which currency each asset is."""

    def __init__(
        self,
        asset_currency_pairs: Optional[Mapping[str, str]] = None,
        session: Optional[requests.Session] = None,
        timeout: float = HTTP_TIMEOUT,
        exchange_rate_url: str = EXCHANGE_RATE_API_URL,
        coingecko_url: str = COINGECKO_API_URL,
    ) -> None:
        self._assets = dict(asset_currency_pairs or {})
        self._session = session if session is not None else requests.Session()
        self._timeout = timeout
        self._exchange_rate_url = exchange_rate_url.rstrip("/")
        self._coingecko_url = coingecko_url.rstrip("/")

    def _get(self, url: str, params: Optional[Mapping[str, str]] = None) -> requests.Response:
        resp = self._session.get(url, params=params, timeout=self._timeout)
        if resp.status_code != 200:
            raise requests.HTTPError(
                f"unexpected status code: {resp.status_code}, error: {resp.text}", response=resp
            )
        return resp

    def convert_currency(self, source: str, target: str) -> Decimal:
        """Value of one unit of source in target currency."""
        source = source.lower()
        target = target.lower()
        if source in (BTC_SYMBOL, LBTC_SYMBOL):
            source = COINGECKO_BTC_ID
        if source == target:
            return Decimal(1)

        if self.is_crypto_symbol(source):
            return self.crypto_to_fiat_rate(source, target)

        if not self.is_fiat_symbol_supported(target):
            raise ValueError(f"{source} is not a supported fiat nor crypto symbol")

        return self.fiat_to_fiat_rate(source, target)

    def is_fiat_symbol_supported(self, symbol: str) -> bool:
        """Whether the fiat rate provider lists the symbol."""
        resp = self._get(f"{self._exchange_rate_url}/symbols")
        return f'"{symbol.upper()}"' in resp.text

    def get_asset_currency(self, asset_id: str) -> str:
        """The currency symbol configured for an asset."""
        try:
            return self._assets[asset_id]
        except KeyError:
            raise LookupError(f"asset {asset_id} not found") from None

    def is_crypto_symbol(self, symbol: str) -> bool:
        """Whether the symbol is a coin id known to the crypto price provider."""
        symbol = symbol.lower()
        coins = self._get(f"{self._coingecko_url}/coins/list").json() or []
        return any(coin.get("id") == symbol for coin in coins)

    def crypto_to_fiat_rate(self, source: str, target: str) -> Decimal:
        """Price of one coin in a fiat currency."""
        source = source.lower()
        target = target.lower()
        prices = self._get(
            f"{self._coingecko_url}/simple/price",
            params={"ids": source, "vs_currencies": target},
        ).json() or {}
        value = float((prices.get(source) or {}).get(target, 0) or 0)
        if value == 0:
            raise CurrencyNotFoundError()
        return _decimal(value)

    def fiat_to_fiat_rate(self, source: str, target: str) -> Decimal:
        """Rate of one unit of a fiat currency in another."""
        source = source.upper()
        target = target.upper()
        rates = self.fetch_rates(
            {"base": source, "symbols": target, "date": date.today().isoformat()}
        )
        # The provider answers with another base when the requested one is unknown.
        if rates.base != source:
            raise CurrencyNotFoundError()
        return _decimal(rates.rates.get(target, 0.0))

    def fetch_rates(self, params: Mapping[str, str]) -> RateResponse:
        """Fetch the latest rates for the base and symbols in params."""
        query: Dict[str, str] = {}
        if params.get("base"):
            query["base"] = params["base"].upper()
        if params.get("symbols"):
            query["symbols"] = params["symbols"].upper()
        resp = self._get(f"{self._exchange_rate_url}/latest", params=query or None)
        return RateResponse.from_json(resp.json() or {})