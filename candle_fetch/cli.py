#!/usr/bin/env python3
"""
Command-line interface for the candle_fetch package.

Parses flags, resolves them into a FetchRequest, fetches one batch of
candles from Bybit and writes them to stdout as CSV. Diagnostics go to stderr.
"""

from __future__ import annotations

import argparse
import sys
from typing import List, Optional, TextIO

from .candle_fetch import (
    Fore,
    Style,
    INFO,
    WARNING,
    ERROR,
    SUCCESS,
    COLOR_VAR,
    COLOR_TYPE,
    DEFAULT_TIMEFRAME,
    DEFAULT_LIMIT,
    DEFAULT_MARKET,
    ENV_API_KEY,
    ENV_API_SECRET,
    ENV_LOAD_MARKETS,
    MARKET_TYPES,
    CandleFetchError,
    Config,
    ExchangeFactory,
    FetchRequest,
    MarketFetcher,
    build_exchange,
    resolve_request,
    write_csv,
)

# -----------------------------
# Constants
# -----------------------------
EXIT_OK: int = 0
EXIT_FAILURE: int = 1
SEP_BULLET: str = " · "


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="candle-fetch",
        description=(
            "Fetch historical OHLCV candles from Bybit and print them as CSV on stdout.\n\n"
            "Required: -symbol\n"
            f"Credentials: {ENV_API_KEY} / {ENV_API_SECRET} (optional for public data)\n"
        ),
        formatter_class=argparse.RawTextHelpFormatter,
    )

    # Single-dash long flags are the documented form; double-dash works too.
    # symbol defaults to "" so that a missing flag gets the same error as an empty one.
    parser.add_argument("-symbol", "--symbol", dest="symbol", default="",
                        help="Trading pair symbol (e.g., BTC/USDT)")
    parser.add_argument("-timeframe", "--timeframe", dest="timeframe", default=DEFAULT_TIMEFRAME,
                        help=f"Timeframe, e.g. 1m, 5m, 1h (default: {DEFAULT_TIMEFRAME})")
    parser.add_argument("-since", "--since", dest="since", default="",
                        help="Start time in RFC3339 format (default: 1 hour ago)")
    parser.add_argument("-limit", "--limit", dest="limit", type=int, default=DEFAULT_LIMIT,
                        help=f"Maximum number of candles to fetch (default: {DEFAULT_LIMIT})")
    parser.add_argument("-market", "--market", dest="market", default=DEFAULT_MARKET,
                        help=f"Market type: {', '.join(MARKET_TYPES)} (default: {DEFAULT_MARKET})")
    parser.add_argument(
        "-load-markets",
        "--load-markets",
        dest="load_markets",
        action="store_true",
        help=f"Preload market metadata before fetching (also via {ENV_LOAD_MARKETS}=1)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Print run summary to stderr")

    return parser.parse_args(argv)


def _one_line_run_summary(request: FetchRequest, config: Config) -> str:
    """
    Single colored line describing the resolved request, e.g.
      [INFO] BTC/USDT · tf=1m · since=2024-05-01T12:00:00+00:00 · limit=100 · market=linear(swap) · preload=False
    """
    parts = [
        f"{Fore.MAGENTA}{request.symbol}{Style.RESET_ALL}",
        f"{COLOR_VAR}tf{Style.RESET_ALL}={COLOR_TYPE}{request.timeframe}{Style.RESET_ALL}",
        f"{COLOR_VAR}since{Style.RESET_ALL}={COLOR_TYPE}{request.since.isoformat()}{Style.RESET_ALL}",
        f"{COLOR_VAR}limit{Style.RESET_ALL}={COLOR_TYPE}{request.limit}{Style.RESET_ALL}",
        f"{COLOR_VAR}market{Style.RESET_ALL}={COLOR_TYPE}{request.market}({request.default_type}){Style.RESET_ALL}",
        f"{COLOR_VAR}preload{Style.RESET_ALL}={COLOR_TYPE}{config.load_markets}{Style.RESET_ALL}",
    ]
    return f"{INFO} " + SEP_BULLET.join(parts)


def run_cli(
    symbol: str,
    timeframe: str,
    since: Optional[str],
    limit: int,
    market: str,
    config: Config,
    verbose: bool = False,
    exchange_factory: ExchangeFactory = build_exchange,
    stdout: Optional[TextIO] = None,
    stderr: Optional[TextIO] = None,
) -> int:
    """
    Resolve, fetch and write. Every failure becomes one line on stderr.
    Returns a process exit code.
    """
    err = stderr if stderr is not None else sys.stderr

    try:
        request = resolve_request(
            symbol=symbol,
            timeframe=timeframe,
            since=since,
            limit=limit,
            market=market,
        )
        if verbose:
            err.write(_one_line_run_summary(request, config) + "\n")

        candles = MarketFetcher(config, exchange_factory=exchange_factory).fetch(request)
        written = write_csv(candles, stream=stdout)
    except CandleFetchError as exc:
        err.write(f"{ERROR} Error: {exc}{Style.RESET_ALL}\n")
        return EXIT_FAILURE

    if verbose:
        if written:
            err.write(f"{SUCCESS} Wrote {written} candles.{Style.RESET_ALL}\n")
        else:
            err.write(f"{WARNING} No candles returned (check -since / -timeframe).{Style.RESET_ALL}\n")
    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> None:
    args = parse_args(argv)

    config = Config.from_env()
    if args.load_markets:
        config.load_markets = True

    exit_code = run_cli(
        symbol=args.symbol,
        timeframe=args.timeframe,
        since=args.since,
        limit=args.limit,
        market=args.market,
        config=config,
        verbose=args.verbose,
    )
    raise SystemExit(exit_code)


if __name__ == "__main__":
    main()
