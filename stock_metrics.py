'''
pure derivation logic: turns ticker metadata + the current and month-ago daily bars into one StockRecord
(day/month changes, country from locale, cap-size tags).
'''
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from providers import DailyBar, TickerMetadata

LARGE_CAP_MIN = 10_000_000_000
MID_CAP_MIN = 2_000_000_000

COUNTRY_BY_LOCALE = {
    "us": "United States",
    "ca": "Canada",
    "uk": "United Kingdom",
    "eu": "Europe",
    "asia": "Asia",
    "au": "Australia",
}


@dataclass
class StockRecord:
    symbol: str
    name: str
    country: str
    market_cap: float
    price: float
    changes: float
    changes_percentage: float
    monthly_changes: float
    monthly_changes_percentage: float
    indexes: List[str] = field(default_factory=list)
    last_updated: Optional[datetime] = None

    def __post_init__(self):
        self.symbol = self.symbol.upper()

    def to_dict(self) -> dict:
        return {
            "symbol": self.symbol,
            "name": self.name,
            "country": self.country,
            "marketCap": self.market_cap,
            "price": self.price,
            "changes": self.changes,
            "changesPercentage": self.changes_percentage,
            "monthlyChanges": self.monthly_changes,
            "monthlyChangesPercentage": self.monthly_changes_percentage,
            "indexes": list(self.indexes),
            "lastUpdated": self.last_updated.isoformat() if self.last_updated else None,
        }


def pct_change(change: float, reference: float) -> float:
    if reference <= 0:
        return 0.0
    return change / reference * 100


def determine_country(locale: str) -> str:
    return COUNTRY_BY_LOCALE.get((locale or "").lower(), "Unknown")


def determine_indexes(market_cap: float) -> List[str]:
    if market_cap and market_cap > LARGE_CAP_MIN:
        return ["Large Cap"]
    if market_cap and market_cap > MID_CAP_MIN:
        return ["Mid Cap"]
    return ["Small Cap"]


def is_valid_bar(bar: Optional[DailyBar]) -> bool:
    return bar is not None and bar.close is not None and bar.close > 0


def build_stock_record(
    meta: TickerMetadata,
    current: DailyBar,
    monthly: Optional[DailyBar] = None,
    now: Optional[datetime] = None,
) -> StockRecord:
    price = current.close
    # the open-close endpoint has no prior-day close; the session open is the reference
    previous_close = current.open or 0.0
    changes = price - previous_close

    monthly_close = monthly.close if monthly is not None else 0.0
    if monthly_close > 0:
        monthly_changes = price - monthly_close
    else:
        monthly_changes = 0.0

    return StockRecord(
        symbol=meta.symbol,
        name=meta.name,
        country=determine_country(meta.locale),
        market_cap=meta.market_cap or 0.0,
        price=price,
        changes=changes,
        changes_percentage=pct_change(changes, previous_close),
        monthly_changes=monthly_changes,
        monthly_changes_percentage=pct_change(monthly_changes, monthly_close),
        indexes=determine_indexes(meta.market_cap),
        last_updated=now or datetime.now(timezone.utc),
    )
