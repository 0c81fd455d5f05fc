#!/usr/bin/env python3
"""
Example runner for candle_fetch that delegates to the package CLI.

    BYBIT_API_KEY=... BYBIT_API_SECRET=... python example.py -symbol BTC/USDT -timeframe 5m -limit 12 > btc.csv

Keeps a single source of truth for argument parsing, validation and output
(the installed console script is `candle-fetch`).
"""

from __future__ import annotations

import sys
from candle_fetch.cli import main as cli_main


def main() -> None:
    cli_main(sys.argv[1:])


if __name__ == "__main__":
    main()
