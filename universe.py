"""
the fixed symbol universe and batch slicing.
three index lists are merged in order, de-duplicated (first occurrence wins) and capped.
batches are 1-based contiguous slices; a batch past the end is an empty slice, not an error.
"""
import math
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

UNIVERSE_CAP = 330
BATCH_SIZE = 8

NASDAQ_100 = [
    "AAPL", "MSFT", "GOOGL", "AMZN", "TSLA", "META", "NVDA", "NFLX", "ADBE", "CRM",
    "PYPL", "INTC", "CMCSA", "PEP", "COST", "TMUS", "AVGO", "TXN", "QCOM", "CHTR",
    "SBUX", "INTU", "ISRG", "GILD", "MDLZ", "BKNG", "ADP", "VRTX", "REGN", "CSX",
    "AMAT", "AMD", "ATVI", "ADSK", "ILMN", "LRCX", "MU", "AMGN", "BIIB", "FISV",
    "CTAS", "KLAC", "SNPS", "MCHP", "CDNS", "CTSH", "WBA", "EXC", "AEP", "SO",
    "DUK", "D", "EXPE", "PAYX", "ORLY", "ROST", "DXCM", "IDXX", "SIRI", "CHKP",
    "VRSN", "NTES", "MRNA", "BIDU", "ALGN", "CPRT", "FAST", "VRSK", "ANSS", "CTXS",
    "WLTW", "XEL", "ILMN", "MELI", "TEAM", "ZM", "DOCU", "CRWD", "OKTA", "SNOW",
    "PLTR", "ROKU", "PTON", "ZOOM", "SQ", "SHOP", "TWLO", "SPOT", "UBER", "LYFT",
]

SP500_TOP = [
    "JNJ", "JPM", "V", "PG", "UNH", "HD", "MA", "DIS", "BAC", "XOM",
    "T", "PFE", "ABT", "VZ", "KO", "MRK", "TMO", "WMT", "ABBV", "ACN",
    "NKE", "CVX", "DHR", "TXN", "NEE", "LLY", "UNP", "PM", "HON", "IBM",
    "SPGI", "RTX", "LOW", "TGT", "ISRG", "GILD", "MDLZ", "BKNG", "ADP", "VRTX",
    "REGN", "CSX", "AMAT", "AMD", "ATVI", "ADSK", "ILMN", "LRCX", "MU", "BIIB",
    "FISV", "CTAS", "KLAC", "SNPS", "MCHP", "CDNS", "CTSH", "WBA", "EXC", "AEP",
    "SO", "DUK", "D", "EXPE", "PAYX", "ORLY", "ROST", "DXCM", "IDXX", "SIRI",
    "CHKP", "VRSN", "NTES", "MRNA", "BIDU", "ALGN", "CPRT", "FAST", "VRSK", "ANSS",
    "CTXS", "WLTW", "XEL", "MELI", "TEAM", "ZM", "DOCU", "CRWD", "OKTA", "SNOW",
    "PLTR", "ROKU", "PTON", "ZOOM", "SQ", "SHOP", "TWLO", "SPOT", "UBER", "LYFT",
]

DOW_30 = [
    "AAPL", "MSFT", "UNH", "JNJ", "V", "JPM", "PG", "HD", "MA", "DIS",
    "BAC", "XOM", "T", "PFE", "ABT", "VZ", "KO", "MRK", "TMO", "WMT",
    "ABBV", "ACN", "NKE", "CVX", "DHR", "ADBE",
]


@dataclass(frozen=True)
class BatchPlan:
    batch_number: int
    total_batches: int
    start_index: int
    end_index: int
    symbols: List[str] = field(default_factory=list)


def target_universe(cap: int = UNIVERSE_CAP) -> List[str]:
    seen = set()
    out = []
    for symbol in [*NASDAQ_100, *SP500_TOP, *DOW_30]:
        if symbol in seen:
            continue
        seen.add(symbol)
        out.append(symbol)
    return out[:cap]


def batch_count(batch_size: int = BATCH_SIZE, universe: Optional[Sequence[str]] = None) -> int:
    symbols = target_universe() if universe is None else universe
    return math.ceil(len(symbols) / batch_size)


def plan_batch(
    batch_number: int,
    total_batches: int,
    batch_size: int = BATCH_SIZE,
    universe: Optional[Sequence[str]] = None,
) -> BatchPlan:
    if batch_number < 1:
        raise ValueError(f"batch_number must be >= 1, got {batch_number}")
    if batch_size < 1:
        raise ValueError(f"batch_size must be >= 1, got {batch_size}")

    symbols = list(target_universe() if universe is None else universe)
    start = (batch_number - 1) * batch_size
    end = min(start + batch_size, len(symbols))
    if start >= len(symbols):
        end = start

    return BatchPlan(
        batch_number=batch_number,
        total_batches=total_batches,
        start_index=start,
        end_index=end,
        symbols=symbols[start:end],
    )
