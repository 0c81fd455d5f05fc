#!/usr/bin/env python3

import csv
import math
import os
import re
import sys
import numpy as np
import ccxt
from datetime import datetime, timezone, timedelta
from dataclasses import dataclass
from typing import Callable, Iterable, List, Mapping, Optional, Sequence, TextIO

# ----------------------------------------------------------------------
# 1) COLOR & LOGGING SETUP
# ----------------------------------------------------------------------
import colorama
from colorama import Fore, Style
# stdout carries CSV, so it must not be wrapped; only fix the Windows console
colorama.just_fix_windows_console()

INFO = Fore.GREEN + "[INFO]" + Style.RESET_ALL
WARNING = Fore.YELLOW + "[WARNING]" + Style.RESET_ALL
ERROR = Fore.RED + "[ERROR]" + Style.RESET_ALL
SUCCESS = Fore.GREEN + "[SUCCESS]" + Style.RESET_ALL

COLOR_VAR = Fore.CYAN
COLOR_TYPE = Fore.YELLOW

# Environment keys read once at startup by Config.from_env()
ENV_API_KEY: str = "BYBIT_API_KEY"
ENV_API_SECRET: str = "BYBIT_API_SECRET"
ENV_LOAD_MARKETS: str = "CANDLE_FETCH_LOAD_MARKETS"

# ----------------------------------------------------------------------
# 2) DEFAULTS & MARKET TYPES
# ----------------------------------------------------------------------
DEFAULT_TIMEFRAME: str = "1m"
DEFAULT_LIMIT: int = 100
DEFAULT_MARKET: str = "linear"
DEFAULT_LOOKBACK = timedelta(hours=1)

MARKET_TYPES: Sequence[str] = ("spot", "linear", "inverse")

# ccxt does not tell linear from inverse contracts at this level; both are "swap"
MARKET_DEFAULT_TYPES = {
    "spot": "spot",
    "linear": "swap",
    "inverse": "swap",
}
FALLBACK_DEFAULT_TYPE: str = "swap"

CSV_HEADER: List[str] = ["timestamp", "iso_time", "open", "high", "low", "close", "volume"]

_RFC3339_RE = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2})T(\d{2}):(\d{2}):(\d{2})(?:\.(\d+))?(Z|[+-]\d{2}:\d{2})$"
)


# ----------------------------------------------------------------------
# 3) ERRORS
# ----------------------------------------------------------------------
class CandleFetchError(Exception):
    """Base class for every fatal error the CLI reports."""


class ValidationError(CandleFetchError):
    """Malformed or missing command-line input, raised before any network call."""


class FetchError(CandleFetchError):
    """The exchange call failed or returned something we cannot read."""


class OutputError(CandleFetchError):
    """Writing CSV to the output stream failed."""


# ----------------------------------------------------------------------
# 4) DATA MODEL
# ----------------------------------------------------------------------
@dataclass(frozen=True)
class Candle:
    """
    Holds a single candle's OHLCV data, exactly as the exchange reported it.
    """
    timestamp: int
    open: float
    high: float
    low: float
    close: float
    volume: float

    @property
    def datetime(self) -> datetime:
        return datetime.fromtimestamp(self.timestamp / 1000, tz=timezone.utc)


@dataclass(frozen=True)
class FetchRequest:
    """
    Validated request descriptor, built once per run by resolve_request().
    """
    symbol: str
    timeframe: str
    since: datetime
    limit: int
    market: str = DEFAULT_MARKET

    @property
    def since_ms(self) -> int:
        return to_epoch_ms(self.since)

    @property
    def default_type(self) -> str:
        return market_to_default_type(self.market)


class Config:
    """
    Exchange credentials and fetch options.
    """
    def __init__(
        self, *,
        api_key: str = "",
        api_secret: str = "",
        load_markets: bool = False,
    ):
        self.api_key = api_key
        self.api_secret = api_secret
        self.load_markets = load_markets

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Config":
        """
        Populate a Config from the process environment (or any mapping).
        Missing credentials are left empty; the exchange decides whether that is fine.
        """
        env = os.environ if environ is None else environ
        return cls(
            api_key=env.get(ENV_API_KEY, ""),
            api_secret=env.get(ENV_API_SECRET, ""),
            load_markets=_truthy_env(env.get(ENV_LOAD_MARKETS)),
        )

    def __repr__(self) -> str:
        # never echo the secret
        has_key = "yes" if self.api_key else "no"
        return f"Config(api_key={has_key}, load_markets={self.load_markets})"


def _truthy_env(val: Optional[str]) -> bool:
    return (val or "").strip().lower() in ("1", "true", "yes", "on", "y", "t")


# ----------------------------------------------------------------------
# 5) TIME HELPERS
# ----------------------------------------------------------------------
def to_epoch_ms(dt: datetime) -> int:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    delta = dt - datetime(1970, 1, 1, tzinfo=timezone.utc)
    return (delta.days * 86_400 + delta.seconds) * 1000 + delta.microseconds // 1000


def parse_rfc3339(value: str) -> datetime:
    """
    Parse an RFC 3339 timestamp such as '2024-05-01T12:00:00Z' or
    '2024-05-01T14:00:00.250+02:00' into an aware datetime.

    Date-only strings, a missing offset, or a space instead of 'T' are rejected.
    Fractions finer than a microsecond are truncated.
    """
    match = _RFC3339_RE.match(value)
    if not match:
        raise ValueError(f"cannot parse {value!r} as RFC3339 (e.g. 2006-01-02T15:04:05Z)")

    year, month, day, hour, minute, second, fraction, offset = match.groups()
    micros = int((fraction or "0")[:6].ljust(6, "0"))

    if offset == "Z":
        tz = timezone.utc
    else:
        sign = -1 if offset[0] == "-" else 1
        off_h, off_m = int(offset[1:3]), int(offset[4:6])
        if off_h > 23 or off_m > 59:
            raise ValueError(f"cannot parse {value!r} as RFC3339: offset out of range")
        tz = timezone(sign * timedelta(hours=off_h, minutes=off_m))

    try:
        return datetime(int(year), int(month), int(day), int(hour), int(minute),
                        int(second), micros, tzinfo=tz)
    except ValueError as exc:
        raise ValueError(f"cannot parse {value!r} as RFC3339: {exc}") from exc


def format_rfc3339(timestamp_ms: int) -> str:
    """Epoch milliseconds -> 'YYYY-MM-DDTHH:MM:SSZ' (UTC, whole seconds)."""
    dt = datetime.fromtimestamp(timestamp_ms // 1000, tz=timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%SZ")


# ----------------------------------------------------------------------
# 6) ARGUMENT RESOLVER
# ----------------------------------------------------------------------
def validate_market_type(market: str) -> None:
    if market not in MARKET_TYPES:
        raise ValidationError(
            f"invalid market type '{market}'. Must be one of: {', '.join(MARKET_TYPES)}"
        )


def resolve_request(
    symbol: str,
    timeframe: str = DEFAULT_TIMEFRAME,
    since: Optional[str] = None,
    limit: int = DEFAULT_LIMIT,
    market: str = DEFAULT_MARKET,
    now: Optional[datetime] = None,
) -> FetchRequest:
    """
    Validate raw command-line values and build a FetchRequest.

    Checks run in a fixed order (symbol, limit, market, since) and the first
    failure raises ValidationError. No I/O happens here.
    """
    if not symbol:
        raise ValidationError("-symbol is required")
    if limit <= 0:
        raise ValidationError("-limit must be greater than 0")

    validate_market_type(market)

    if not since:
        base = now if now is not None else datetime.now(timezone.utc)
        since_dt = base - DEFAULT_LOOKBACK
    else:
        try:
            since_dt = parse_rfc3339(since)
        except ValueError as exc:
            raise ValidationError(f"invalid -since format (expected RFC3339): {exc}") from exc

    return FetchRequest(
        symbol=symbol,
        timeframe=timeframe,
        since=since_dt,
        limit=limit,
        market=market,
    )


# ----------------------------------------------------------------------
# 7) MARKET FETCHER
# ----------------------------------------------------------------------
def market_to_default_type(market: str) -> str:
    return MARKET_DEFAULT_TYPES.get(market, FALLBACK_DEFAULT_TYPE)


def build_exchange(config: Config, default_type: str) -> ccxt.Exchange:
    """Construct the Bybit client ccxt uses for signing and rate limiting."""
    return ccxt.bybit({
        "apiKey": config.api_key,
        "secret": config.api_secret,
        "enableRateLimit": True,
        "options": {
            "defaultType": default_type,
        },
    })


ExchangeFactory = Callable[[Config, str], ccxt.Exchange]


def parse_ohlcv(records: Iterable[Sequence]) -> List[Candle]:
    """
    Convert raw ccxt rows [ts_ms, open, high, low, close, volume] into Candles.
    Order is preserved; nothing is sorted, filtered or deduplicated.
    """
    candles: List[Candle] = []
    for idx, row in enumerate(records):
        try:
            ts, o, h, l, c, v = row[:6]
            candles.append(Candle(
                timestamp=int(ts),
                open=float(o),
                high=float(h),
                low=float(l),
                close=float(c),
                volume=float(v),
            ))
        except (TypeError, ValueError) as exc:
            raise FetchError(f"malformed OHLCV record #{idx}: {row!r}") from exc
    return candles


class MarketFetcher:
    """
    Fetches one bounded batch of candles for a FetchRequest.

    The exchange is created per fetch through `exchange_factory`, so tests can
    hand in a fake object exposing load_markets() and fetch_ohlcv().

    Market preloading is off unless Config.load_markets is set: fetch_ohlcv()
    loads what it needs on its own, and skipping it sidesteps a concurrency bug
    seen in some ccxt builds.
    """

    def __init__(self, config: Config, exchange_factory: ExchangeFactory = build_exchange):
        self.config = config
        self.exchange_factory = exchange_factory

    def fetch(self, request: FetchRequest) -> List[Candle]:
        exchange = self.exchange_factory(self.config, request.default_type)

        try:
            if self.config.load_markets:
                exchange.load_markets()
            records = exchange.fetch_ohlcv(
                request.symbol,
                timeframe=request.timeframe,
                since=request.since_ms,
                limit=request.limit,
            )
        except ccxt.BaseError as exc:
            raise FetchError(f"failed to fetch OHLCV: {exc}") from exc

        return parse_ohlcv(records or [])


# ----------------------------------------------------------------------
# 8) ROW FORMATTER
# ----------------------------------------------------------------------
def format_decimal(value: float) -> str:
    """
    Shortest decimal string that round-trips to the same float64, never in
    scientific notation: 1.0 -> '1', 1e-7 -> '0.0000001'.
    """
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    return np.format_float_positional(value, unique=True, trim="-")


def candle_to_row(candle: Candle) -> List[str]:
    return [
        str(candle.timestamp),
        format_rfc3339(candle.timestamp),
        format_decimal(candle.open),
        format_decimal(candle.high),
        format_decimal(candle.low),
        format_decimal(candle.close),
        format_decimal(candle.volume),
    ]


def write_csv(candles: Iterable[Candle], stream: Optional[TextIO] = None) -> int:
    """
    Write the header plus one row per candle, then flush once.

    Rows already written stay on the stream if a later write fails.
    Returns the number of data rows written.
    """
    out = stream if stream is not None else sys.stdout
    writer = csv.writer(out, lineterminator="\n")

    written = 0
    stage = "header"
    try:
        writer.writerow(CSV_HEADER)
        for candle in candles:
            stage = f"record #{written}"
            writer.writerow(candle_to_row(candle))
            written += 1
        stage = "output"
        out.flush()
    except OSError as exc:
        raise OutputError(f"failed to write {stage}: {exc}") from exc

    return written


if __name__ == "__main__":
    print(f"{ERROR} This module should not be run directly. Use candle-fetch or example.py.", file=sys.stderr)
    sys.exit(1)
