from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from tdexa import domain
from tdexa.errors import Code, HexagonalError
from tdexa.types import (
    START_YEAR,
    CustomPeriod,
    MarketBalance,
    MarketPrice,
    MarketProvider,
    PredefinedPeriod,
    TimeRange,
    ValidationError,
    validate_asset_string,
    validate_time_format,
)

ASSET = "5ac9f65c0efcc4775e0baec4ec03abdde22473cd3cf33c0419ca290e0751b225"
NOW = datetime(START_YEAR, 2, 1, 15, 0, 0, tzinfo=timezone.utc)
START_OF_YEAR = datetime(START_YEAR, 1, 1, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "market_id, base_asset, quote_asset, want_err",
    [
        ("0", "", "", True),
        ("0", ASSET, ASSET, False),
        ("1", ASSET, ASSET, False),
    ],
)
def test_market_balance_validate(market_id, base_asset, quote_asset, want_err):
    balance = MarketBalance(market_id=market_id, base_asset=base_asset, quote_asset=quote_asset)
    if want_err:
        with pytest.raises(ValidationError):
            balance.validate()
    else:
        assert balance.to_domain().market_id == market_id


def test_market_balance_blank_id_message():
    with pytest.raises(ValidationError) as info:
        MarketBalance(market_id="", base_asset=ASSET, quote_asset=ASSET).validate()
    assert info.value.errors == {"MarketID": "cannot be blank"}


def test_market_balance_to_domain_copies_fields():
    when = datetime(2022, 5, 1, tzinfo=timezone.utc)
    balance = MarketBalance("7", 50, ASSET, 500, ASSET, when)
    assert balance.to_domain() == domain.MarketBalance("7", 50, ASSET, 500, ASSET, when)


def test_market_price_to_domain_keeps_decimals():
    price = MarketPrice("3", Decimal("0.000025"), ASSET, Decimal("40381.20"), ASSET)
    converted = price.to_domain()
    assert converted.base_price == Decimal("0.000025")
    assert converted.quote_price == Decimal("40381.20")
    assert converted.time == price.time


def test_market_price_invalid_asset():
    with pytest.raises(ValidationError) as info:
        MarketPrice("3", base_asset="zz", quote_asset=ASSET).validate()
    assert info.value.errors == {"BaseAsset": "asset is not in hex format"}


@pytest.mark.parametrize(
    "period, want_start",
    [
        (PredefinedPeriod.LAST_HOUR, NOW - timedelta(hours=1)),
        (PredefinedPeriod.LAST_DAY, NOW - timedelta(hours=24)),
        (PredefinedPeriod.LAST_MONTH, datetime(2022, 1, 1, 15, tzinfo=timezone.utc)),
        (PredefinedPeriod.LAST_THREE_MONTHS, datetime(2021, 11, 1, 15, tzinfo=timezone.utc)),
        (PredefinedPeriod.YEAR_TO_DATE, START_OF_YEAR),
        (PredefinedPeriod.ALL, START_OF_YEAR),
    ],
)
def test_predefined_periods(period, want_start):
    start, end = TimeRange(predefined_period=period).start_and_end(NOW)
    assert start == want_start
    assert end == NOW


def test_custom_period_not_provided():
    with pytest.raises(ValidationError) as info:
        TimeRange(custom_period=CustomPeriod()).start_and_end(NOW)
    assert set(info.value.errors) == {"StartDate", "EndDate"}


def test_custom_period_not_rfc3339():
    period = CustomPeriod("Mon, 02 Jan 2006 15:04:05 MST", "Mon, 02 Jan 2006 15:04:05 MST")
    with pytest.raises(ValidationError) as info:
        TimeRange(custom_period=period).start_and_end(NOW)
    assert info.value.errors["StartDate"] == "fromTime must be valid RFC3339 format"


def test_custom_period_valid_rfc3339():
    tm = datetime(2022, 2, 8, 14, 34, 40, tzinfo=timezone(timedelta(hours=1)))
    period = CustomPeriod("2022-02-08T14:34:40+01:00", "2022-02-08T14:34:40+01:00")
    start, end = TimeRange(custom_period=period).start_and_end(NOW)
    assert start == tm
    assert end == tm


def test_custom_period_utc_suffix():
    period = CustomPeriod("2022-02-08T14:34:40Z", "2022-02-09T14:34:40Z")
    start, end = TimeRange(custom_period=period).start_and_end(NOW)
    assert end - start == timedelta(days=1)


def test_both_periods_missing():
    with pytest.raises(HexagonalError) as info:
        TimeRange().validate()
    assert info.value.code is Code.INVALID_REQUEST
    assert str(info.value) == "both PredefinedPeriod period and CustomPeriod cant be null"


def test_both_periods_given():
    with pytest.raises(HexagonalError) as info:
        TimeRange(PredefinedPeriod.NIL, CustomPeriod()).validate()
    assert "please provide only one" in str(info.value)


def test_predefined_period_above_all():
    with pytest.raises(HexagonalError) as info:
        TimeRange(predefined_period=7).validate()
    assert str(info.value) == "PredefinedPeriod cant be > 6"


def test_last_month_rolls_over_short_month():
    now = datetime(2022, 3, 31, 12, tzinfo=timezone.utc)
    start, _ = TimeRange(PredefinedPeriod.LAST_MONTH).start_and_end(now)
    assert start == datetime(2022, 3, 3, 12, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "url",
    [
        "https://provider.tdex.network:9945",
        "http://d7y3mzol3eo2tneqw5oytj23knm3734npwml4jzazrzzpy32e56lrxqd.onion:80",
    ],
)
def test_market_provider_valid(url):
    provider = MarketProvider(
        url=url,
        base_asset="6f0279e9ed041c3d710a9f57d0c02928416460c4b722ae3457a11eec381c526d",
        quote_asset="0e99c1a6da379d1f4151fb9df90449d40d0608f6cb33a5bcbfc8c265f42bab0a",
    )
    provider.validate()
    assert provider.to_domain() == domain.Filter(url, provider.base_asset, provider.quote_asset)


def test_market_provider_invalid_message():
    provider = MarketProvider("dummyurl1", "dummybaseasset1", "dummyquoteasset1")
    with pytest.raises(ValidationError) as info:
        provider.validate()
    assert str(info.value) == (
        "BaseAsset: asset is not in hex format; "
        "QuoteAsset: asset is not in hex format; "
        "Url: must be a valid URL."
    )


@pytest.mark.parametrize(
    "asset, message",
    [
        (42, "must be a valid asset string"),
        ("xyz", "asset is not in hex format"),
        ("abcd", "asset length is invalid"),
    ],
)
def test_validate_asset_string_errors(asset, message):
    with pytest.raises(ValueError) as info:
        validate_asset_string(asset)
    assert str(info.value) == message


def test_validate_time_format_raises_hexagonal_error():
    with pytest.raises(HexagonalError) as info:
        validate_time_format("2022-13-45")
    assert info.value.code is Code.INVALID_REQUEST