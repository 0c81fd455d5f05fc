from .candle_fetch import (
    Candle,
    Config,
    FetchRequest,
    MarketFetcher,
    CandleFetchError,
    ValidationError,
    FetchError,
    OutputError,
    resolve_request,
    write_csv,
)
from .cli import main

__version__ = "0.1.0"
__all__ = [
    "Candle",
    "Config",
    "FetchRequest",
    "MarketFetcher",
    "CandleFetchError",
    "ValidationError",
    "FetchError",
    "OutputError",
    "resolve_request",
    "write_csv",
    "main",
]
