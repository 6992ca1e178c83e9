"""
market data provider interface.
defines the MarketDataProvider protocol (ticker metadata + one daily bar) and the error taxonomy the
ingest loop branches on, so the loop stays decoupled from which HTTP API the data comes from.
"""
from __future__ import annotations
from dataclasses import dataclass
from datetime import date
from typing import Optional, Protocol, runtime_checkable


@dataclass(frozen=True)
class TickerMetadata:
    symbol: str
    name: str
    locale: str = ""
    market_cap: float = 0.0
    market: str = ""
    primary_exchange: str = ""


@dataclass(frozen=True)
class DailyBar:
    symbol: str
    day: date
    open: float
    close: float
    high: float = 0.0
    low: float = 0.0
    volume: float = 0.0


class ProviderError(Exception):
    """any non-2xx (or transport failure) that is not one of the subclasses below."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class SymbolNotFound(ProviderError):
    """404: unknown symbol, or no bar for that date (weekend/holiday/plan limits)."""


class AccessDenied(ProviderError):
    """403 / NOT_AUTHORIZED: the plan tier doesn't cover this data."""


class RateLimited(ProviderError):
    """429 / Too Many Requests."""


class ProviderUnavailable(ProviderError):
    """circuit breaker is open; no request was sent."""


@runtime_checkable
class MarketDataProvider(Protocol):
    def get_ticker_metadata(self, symbol: str) -> TickerMetadata:
        """raise SymbolNotFound when the provider has no such ticker."""
        ...

    def get_daily_bar(self, symbol: str, day: date) -> DailyBar:
        """open/close for one symbol on one date. raise SymbolNotFound when there is no bar."""
        ...
