"""Generator of sample price and balance data in line protocol for four past months."""

from __future__ import annotations

import argparse
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional, Sequence, Union
import os

BASE_ASSET = "5ac9f65c0efcc4775e0baec4ec03abdde22473cd3cf33c0419ca290e0751b225"
QUOTE_ASSET = "6f0279e9ed041c3d710a9f57d0c02928416460c4b722ae3457a11eec381c526d"
MARKET_IDS = (1, 2)
STEP = timedelta(minutes=5)
SPAN = timedelta(days=30 * 4)

DEFAULT_PRICES_PATH = "./script/prices.txt"
DEFAULT_BALANCES_PATH = "./script/balances.txt"

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

PathLike = Union[str, "os.PathLike[str]"]


def _nanos(delta: timedelta) -> int:
    return (delta.days * 86400 + delta.seconds) * 10**9 + delta.microseconds * 1000


def price_line(market_id: object, timestamp_ns: int) -> str:
    """One market_price point with fixed prices."""
    return (
        f'market_price,market_id={market_id} base_asset="{BASE_ASSET}",base_price=50,'
        f'quote_asset="{QUOTE_ASSET}",quote_price=500 {timestamp_ns}'
    )


def balance_line(market_id: object, timestamp_ns: int) -> str:
    """One market_balance point with fixed balances."""
    return (
        f'market_balance,market_id={market_id} base_asset="{BASE_ASSET}",base_balance=50i,'
        f'quote_asset="{QUOTE_ASSET}",quote_balances=500i {timestamp_ns}'
    )


def generate(
    prices_path: PathLike, balances_path: PathLike, now: Optional[datetime] = None
) -> int:
    """Append points every five minutes going back about four months; return the count of instants."""
    moment = now if now is not None else datetime.now(timezone.utc)
    if moment.tzinfo is None:
        moment = moment.astimezone()
    start_ns = _nanos(moment - _EPOCH)
    step_ns = _nanos(STEP)
    span_ns = _nanos(SPAN)

    instants = 0
    elapsed = 0
    with open(prices_path, "a", encoding="utf-8") as prices, open(
        balances_path, "a", encoding="utf-8"
    ) as balances:
        while elapsed <= span_ns:
            elapsed += step_ns
            timestamp = start_ns - elapsed
            for market_id in MARKET_IDS:
                prices.write(price_line(market_id, timestamp) + "\n")
            for market_id in MARKET_IDS:
                balances.write(balance_line(market_id, timestamp) + "\n")
            instants += 1
    return instants


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Write the sample data files."""
    parser = argparse.ArgumentParser(description="generate sample prices and balances")
    parser.add_argument("--prices", default=DEFAULT_PRICES_PATH)
    parser.add_argument("--balances", default=DEFAULT_BALANCES_PATH)
    args = parser.parse_args(argv)
    generate(Path(args.prices), Path(args.balances))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())