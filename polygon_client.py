"""
Polygon.io implementation of MarketDataProvider.
ticker details come from /v3/reference/tickers/{symbol}, one day's open/close from /v1/open-close/{symbol}/{date}.
"""
from datetime import date
from typing import Optional

from config import PolygonConfig
from http_client import ThrottledSession
from providers import DailyBar, ProviderError, SymbolNotFound, TickerMetadata


def _num(v) -> float:
    try:
        return float(v) if v is not None else 0.0
    except (TypeError, ValueError):
        return 0.0


class PolygonProvider:
    def __init__(self, config: PolygonConfig, session: Optional[ThrottledSession] = None):
        if not config.api_key:
            raise ValueError("POLYGON_API_KEY missing. Add it to .env file.")
        self.config = config
        self.http = session or ThrottledSession(
            min_interval_s=config.min_interval_s,
            timeout_s=config.timeout_s,
            breaker_threshold=config.breaker_threshold,
            breaker_reset_s=config.breaker_reset_s,
        )
        self.headers = {"Authorization": f"Bearer {config.api_key}"}

    def get_ticker_metadata(self, symbol: str) -> TickerMetadata:
        url = f"{self.config.base_url}/v3/reference/tickers/{symbol}"
        data = self.http.get_json(url, headers=self.headers)

        results = data.get("results") if isinstance(data, dict) else None
        if not results:
            raise SymbolNotFound(f"no ticker details for {symbol}", status=404)

        return TickerMetadata(
            symbol=str(results.get("ticker") or symbol).upper(),
            name=results.get("name") or symbol,
            locale=results.get("locale") or "",
            market_cap=_num(results.get("market_cap")),
            market=results.get("market") or "",
            primary_exchange=results.get("primary_exchange") or "",
        )

    def get_daily_bar(self, symbol: str, day: date) -> DailyBar:
        url = f"{self.config.base_url}/v1/open-close/{symbol}/{day.isoformat()}"
        data = self.http.get_json(url, params={"adjusted": "true"}, headers=self.headers)

        if not isinstance(data, dict):
            raise ProviderError(f"unexpected open-close payload for {symbol} {day}")
        if data.get("close") is None:
            raise SymbolNotFound(f"no close for {symbol} on {day}", status=404)

        return DailyBar(
            symbol=str(data.get("symbol") or symbol).upper(),
            day=day,
            open=_num(data.get("open")),
            close=_num(data.get("close")),
            high=_num(data.get("high")),
            low=_num(data.get("low")),
            volume=_num(data.get("volume")),
        )
