from decimal import Decimal

import pytest
import requests
import responses
from responses import matchers

from tdexa.domain import CurrencyNotFoundError
from tdexa.rater import (
    COINGECKO_API_URL,
    EXCHANGE_RATE_API_URL,
    ExchangeRateClient,
    RateResponse,
)

SYMBOLS_URL = f"{EXCHANGE_RATE_API_URL}/symbols"
LATEST_URL = f"{EXCHANGE_RATE_API_URL}/latest"
COINS_URL = f"{COINGECKO_API_URL}/coins/list"
SIMPLE_PRICE_URL = f"{COINGECKO_API_URL}/simple/price"

SYMBOLS = {"success": True, "symbols": {"EUR": {"code": "EUR"}, "USD": {"code": "USD"}}}
COINS = [
    {"id": "bitcoin", "symbol": "btc", "name": "Bitcoin"},
    {"id": "ethereum", "symbol": "eth", "name": "Ethereum"},
]


@pytest.fixture
def mocked():
    with responses.RequestsMock(assert_all_requests_are_fired=False) as rsps:
        rsps.add(responses.GET, SYMBOLS_URL, json=SYMBOLS)
        rsps.add(responses.GET, COINS_URL, json=COINS)
        yield rsps


def _latest(rsps, base, symbols, body):
    rsps.add(responses.GET, LATEST_URL, json=body,
             match=[matchers.query_param_matcher({"base": base, "symbols": symbols})])


def _simple(rsps, ids, vs, body):
    rsps.add(responses.GET, SIMPLE_PRICE_URL, json=body,
             match=[matchers.query_param_matcher({"ids": ids, "vs_currencies": vs})])


def test_fiat_to_fiat_unknown_source(mocked):
    _latest(mocked, "ETH", "EUR", {"base": "EUR", "date": "2022-06-15", "rates": {"EUR": 1}})
    with pytest.raises(CurrencyNotFoundError):
        ExchangeRateClient().fiat_to_fiat_rate("ETH", "EUR")


def test_fiat_to_fiat_rate(mocked):
    _latest(mocked, "EUR", "USD", {"base": "EUR", "date": "2022-06-15", "rates": {"USD": 1.05}})
    client = ExchangeRateClient()
    assert client.fiat_to_fiat_rate("EUR", "USD") == Decimal("1.05")
    assert client.fiat_to_fiat_rate("eur", "usd") == Decimal("1.05")


def test_is_crypto_symbol(mocked):
    client = ExchangeRateClient()
    assert client.is_crypto_symbol("EUR") is False
    assert client.is_crypto_symbol("bitcoin") is True


def test_crypto_to_fiat_rate(mocked):
    _simple(mocked, "bitcoin", "eur", {"bitcoin": {"eur": 19000.25}})
    rate = ExchangeRateClient().crypto_to_fiat_rate("BITCOIN", "EUR")
    assert rate > 0
    assert rate == Decimal("19000.25")


def test_convert_currency_scenarios(mocked):
    _latest(mocked, "EUR", "USD", {"base": "EUR", "date": "2022-06-15", "rates": {"USD": 1.05}})
    _latest(mocked, "USD", "EUR", {"base": "USD", "date": "2022-06-15", "rates": {"EUR": 0.95}})
    _simple(mocked, "bitcoin", "usd", {"bitcoin": {"usd": 20000.5}})
    client = ExchangeRateClient(None)
    assert client.convert_currency("EUR", "USD") == Decimal("1.05")
    assert client.convert_currency("USD", "EUR") == Decimal("0.95")
    assert client.convert_currency("bitcoin", "USD") == Decimal("20000.5")
    assert client.convert_currency("btc", "USD") == Decimal("20000.5")
    assert client.convert_currency("LBTC", "usd") == Decimal("20000.5")


def test_convert_same_currency_makes_no_request():
    with responses.RequestsMock() as rsps:
        assert ExchangeRateClient().convert_currency("btc", "bitcoin") == Decimal(1)
        assert len(rsps.calls) == 0


def test_convert_currency_negative_scenarios(mocked):
    _latest(mocked, "DWDW", "EUR", {"base": "EUR", "date": "2022-06-15", "rates": {"EUR": 1}})
    _simple(mocked, "bitcoin", "dwdw", {"bitcoin": {}})
    client = ExchangeRateClient(None)
    with pytest.raises(CurrencyNotFoundError) as first:
        client.convert_currency("dwdw", "eur")
    assert str(first.value) == "can't convert currencies, currency not found"
    with pytest.raises(CurrencyNotFoundError) as second:
        client.convert_currency("btc", "dwdw")
    assert str(second.value) == "can't convert currencies, currency not found"


def test_convert_unsupported_everything(mocked):
    with pytest.raises(ValueError, match="dwdw is not a supported fiat nor crypto symbol"):
        ExchangeRateClient().convert_currency("dwdw", "xyz")


def test_is_fiat_symbol_supported(mocked):
    client = ExchangeRateClient()
    assert client.is_fiat_symbol_supported("eur") is True
    assert client.is_fiat_symbol_supported("XYZ") is False


def test_unexpected_status_raises():
    with responses.RequestsMock() as rsps:
        rsps.add(responses.GET, SYMBOLS_URL, status=500, body="boom")
        with pytest.raises(requests.HTTPError, match="unexpected status code: 500, error: boom"):
            ExchangeRateClient().is_fiat_symbol_supported("EUR")


def test_get_asset_currency():
    client = ExchangeRateClient({"asset-1": "LBTC", "asset-2": "USD"})
    assert client.get_asset_currency("asset-2") == "USD"
    with pytest.raises(LookupError, match="asset asset-3 not found"):
        client.get_asset_currency("asset-3")


def test_fetch_rates_upper_cases_params(mocked):
    _latest(mocked, "EUR", "USD", {"base": "EUR", "date": "2022-06-15", "rates": {"USD": 1.05}})
    got = ExchangeRateClient().fetch_rates({"base": "eur", "symbols": "usd", "date": "2022-06-15"})
    assert got == RateResponse(base="EUR", date="2022-06-15", rates={"USD": 1.05})


def test_rate_response_from_json_handles_null_rates():
    assert RateResponse.from_json({"base": "EUR", "rates": None}) == RateResponse(base="EUR", date="", rates={})