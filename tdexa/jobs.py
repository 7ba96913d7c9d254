"""Cron-style job scheduling and the periodic market discovery job."""

from __future__ import annotations

import itertools
import logging
import re
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, FrozenSet, List, Optional, Protocol, Tuple

from tdexa import domain
from tdexa.loader import LiquidityProvider

log = logging.getLogger(__name__)

# Every day at 00:00.
FETCH_MARKETS_CRON = "0 0 * * *"

_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "μs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")

_MONTHS = {
    name: number
    for number, name in enumerate(
        ["jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec"],
        start=1,
    )
}
_DAYS = {name: number for number, name in enumerate(["sun", "mon", "tue", "wed", "thu", "fri", "sat"])}

_FIELDS: List[Tuple[int, int, Dict[str, int]]] = [
    (0, 59, {}),
    (0, 23, {}),
    (1, 31, {}),
    (1, 12, _MONTHS),
    (0, 6, _DAYS),
]

_DESCRIPTORS = {
    "@yearly": "0 0 1 1 *",
    "@annually": "0 0 1 1 *",
    "@monthly": "0 0 1 * *",
    "@weekly": "0 0 * * 0",
    "@daily": "0 0 * * *",
    "@midnight": "0 0 * * *",
    "@hourly": "0 * * * *",
}


def _parse_duration(text: str) -> timedelta:
    sign = 1.0
    body = text
    if body[:1] in "+-" and body:
        sign = -1.0 if body[0] == "-" else 1.0
        body = body[1:]
    if body == "0":
        return timedelta(0)
    if not body:
        raise ValueError(f"invalid duration {text!r}")
    seconds = 0.0
    pos = 0
    while pos < len(body):
        match = _DURATION_PART.match(body, pos)
        if match is None:
            raise ValueError(f"invalid duration {text!r}")
        seconds += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    return timedelta(seconds=sign * seconds)


class _EverySchedule:
    def __init__(self, interval: timedelta) -> None:
        whole = timedelta(seconds=int(interval.total_seconds()))
        self.interval = max(whole, timedelta(seconds=1))

    def next(self, moment: datetime) -> Optional[datetime]:
        return moment.replace(microsecond=0) + self.interval


def _parse_value(text: str, names: Dict[str, int]) -> int:
    lowered = text.lower()
    if lowered in names:
        return names[lowered]
    if not text.isdigit():
        raise ValueError(f"invalid cron value {text!r}")
    return int(text)


def _parse_field(text: str, low: int, high: int, names: Dict[str, int]) -> Tuple[FrozenSet[int], bool]:
    values = set()
    star = False
    for part in text.split(","):
        range_part, has_step, step_part = part.partition("/")
        if range_part in ("*", "?"):
            start, end = low, high
            part_star = True
        else:
            part_star = False
            first, has_dash, last = range_part.partition("-")
            start = _parse_value(first, names)
            end = _parse_value(last, names) if has_dash else start
        step = 1
        if has_step:
            if not step_part.isdigit():
                raise ValueError(f"invalid cron step in {part!r}")
            step = int(step_part)
            if not part_star and start == end and "-" not in range_part:
                end = high
            if step > 1:
                part_star = False
        if step < 1 or start < low or end > high or start > end:
            raise ValueError(f"cron value out of range in {part!r}")
        values.update(range(start, end + 1, step))
        star = star or part_star
    return frozenset(values), star


@dataclass(frozen=True)
class _CronSchedule:
    minutes: FrozenSet[int]
    hours: FrozenSet[int]
    days_of_month: FrozenSet[int]
    months: FrozenSet[int]
    days_of_week: FrozenSet[int]
    dom_star: bool
    dow_star: bool

    def _day_matches(self, moment: datetime) -> bool:
        dom = moment.day in self.days_of_month
        dow = (moment.weekday() + 1) % 7 in self.days_of_week
        if self.dom_star or self.dow_star:
            return dom and dow
        return dom or dow

    def next(self, moment: datetime) -> Optional[datetime]:
        current = moment.replace(second=0, microsecond=0) + timedelta(minutes=1)
        last_year = current.year + 5
        while current.year <= last_year:
            if current.month not in self.months:
                year, month = divmod(current.year * 12 + current.month, 12)
                current = current.replace(year=year, month=month + 1, day=1, hour=0, minute=0)
                continue
            if not self._day_matches(current):
                current = (current + timedelta(days=1)).replace(hour=0, minute=0)
                continue
            if current.hour not in self.hours:
                current = (current + timedelta(hours=1)).replace(minute=0)
                continue
            if current.minute not in self.minutes:
                current += timedelta(minutes=1)
                continue
            return current
        return None


def _parse_schedule(expression: str):
    text = expression.strip()
    if text.startswith("@every"):
        rest = text[len("@every"):].strip()
        if not rest:
            raise ValueError(f"missing duration in {expression!r}")
        return _EverySchedule(_parse_duration(rest))
    text = _DESCRIPTORS.get(text, text)
    if text.startswith("@"):
        raise ValueError(f"unrecognized descriptor {expression!r}")
    fields = text.split()
    if len(fields) != len(_FIELDS):
        raise ValueError(f"expected {len(_FIELDS)} fields, found {len(fields)}: {expression!r}")
    parsed = [_parse_field(f, low, high, names) for f, (low, high, names) in zip(fields, _FIELDS)]
    (minutes, _), (hours, _), (dom, dom_star), (months, _), (dow, dow_star) = parsed
    return _CronSchedule(minutes, hours, dom, months, dow, dom_star, dow_star)


@dataclass
class _Entry:
    id: int
    schedule: object
    job: Callable[[], None]
    next: Optional[datetime] = None


class Scheduler:
    """Runs jobs on cron schedules in a background thread."""

    def __init__(self, clock: Callable[[], datetime] = datetime.now) -> None:
        self._clock = clock
        self._entries: List[_Entry] = []
        self._lock = threading.Lock()
        self._wake = threading.Event()
        self._ids = itertools.count(1)
        self._running = False
        self._thread: Optional[threading.Thread] = None

    def add_job(self, expression: str, job: Callable[[], None]) -> int:
        """Schedule a job; raise ValueError if the expression cannot be parsed."""
        schedule = _parse_schedule(expression)
        with self._lock:
            entry = _Entry(next(self._ids), schedule, job)
            if self._running:
                entry.next = schedule.next(self._clock())
            self._entries.append(entry)
        self._wake.set()
        return entry.id

    def start(self) -> None:
        """Start running scheduled jobs; does nothing if already running."""
        with self._lock:
            if self._running:
                return
            self._running = True
            now = self._clock()
            for entry in self._entries:
                entry.next = entry.schedule.next(now)
            self._thread = threading.Thread(target=self._run, name="scheduler", daemon=True)
            self._thread.start()

    def stop(self) -> None:
        """Stop scheduling new runs; jobs already running are not interrupted."""
        with self._lock:
            if not self._running:
                return
            self._running = False
            thread, self._thread = self._thread, None
        self._wake.set()
        if thread is not None and thread is not threading.current_thread():
            thread.join()

    def _run(self) -> None:
        while True:
            with self._lock:
                if not self._running:
                    return
                pending = [e.next for e in self._entries if e.next is not None]
                delay = (min(pending) - self._clock()).total_seconds() if pending else None
            if delay is None or delay > 0:
                self._wake.wait(delay)
                self._wake.clear()
                continue
            with self._lock:
                if not self._running:
                    return
                now = self._clock()
                due = [e for e in self._entries if e.next is not None and e.next <= now]
                for entry in due:
                    entry.next = entry.schedule.next(now)
            for entry in due:
                threading.Thread(target=self._invoke, args=(entry.job,), daemon=True).start()

    @staticmethod
    def _invoke(job: Callable[[], None]) -> None:
        try:
            job()
        except Exception:
            log.exception("scheduled job failed")


class _ProvidersSource(Protocol):
    def fetch_providers_markets(self) -> List[LiquidityProvider]:
        """Return providers with their markets."""


class _JobScheduler(Protocol):
    def add_job(self, expression: str, job: Callable[[], None]) -> int:
        """Schedule a job."""

    def start(self) -> None:
        """Start running jobs."""


class MarketsLoaderService:
    """Keeps the market repository in sync with the providers' markets."""

    def __init__(
        self,
        market_repository: domain.MarketRepository,
        loader: _ProvidersSource,
        scheduler: Optional[_JobScheduler] = None,
    ) -> None:
        self._market_repository = market_repository
        self._loader = loader
        self._scheduler = scheduler if scheduler is not None else Scheduler()

    def start_fetching_markets_job(self) -> None:
        """Fetch markets now in the background, then every day at midnight."""
        threading.Thread(target=self.fetch_markets, name="fetch-markets", daemon=True).start()
        self._scheduler.add_job(FETCH_MARKETS_CRON, self.fetch_markets)
        self._scheduler.start()

    def fetch_markets(self) -> None:
        """Load every provider's markets and store them, logging failures."""
        log.info("job FetchMarkets at: %s", datetime.now())
        try:
            providers = self._loader.fetch_providers_markets()
        except Exception as exc:
            log.error("FetchMarkets -> FetchProvidersMarkets: %s", exc)
            return

        for provider in providers:
            for market in provider.markets:
                try:
                    self._market_repository.insert_market(
                        domain.Market(
                            provider_name=provider.name,
                            url=provider.endpoint,
                            base_asset=market.base_asset,
                            quote_asset=market.quote_asset,
                        )
                    )
                except Exception as exc:
                    log.error("FetchMarkets -> InsertMarket: %s", exc)