#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Plain value types passed between the fetchers, the series helpers and the
report composer. Nothing here is persisted; every run builds fresh ones.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional


@dataclass(frozen=True)
class IndexSnapshot:
    today_value: float
    yesterday_value: float


@dataclass(frozen=True)
class HistoryPoint:
    date: str           # YYYY-MM-DD
    value: float


@dataclass(frozen=True)
class GlobalVolume:
    total_volume_24h: float
    total_market_cap: float
    total_market_cap_yesterday: float
    total_volume_24h_yesterday: float
    market_cap_change_pct: float    # upstream delta, passed through
    volume_change_pct: float        # upstream delta, passed through


@dataclass(frozen=True)
class GlobalMetrics:
    btc_dominance: float
    eth_dominance: float
    volume: GlobalVolume


@dataclass(frozen=True)
class CoinStats:
    price: float
    volume_24h: float
    percent_change_1h: float
    percent_change_24h: float
    market_cap: float
    dominance: Optional[float] = None


@dataclass(frozen=True)
class RatioPoint:
    date: str
    ratio: float
    normalized_ratio: float         # 0..100 over the requested window


@dataclass
class MarketSnapshot:
    index: IndexSnapshot
    metrics: GlobalMetrics
    funding_rate: float             # percent per funding period
    btc_price: float
    eth_price: float
    coins: Dict[str, CoinStats] = field(default_factory=dict)
    fear_history: List[HistoryPoint] = field(default_factory=list)
    btc_history: List[HistoryPoint] = field(default_factory=list)
    ratio_series: List[RatioPoint] = field(default_factory=list)


@dataclass
class Report:
    lines: List[str]
    chart_url: Optional[str] = None

    @property
    def text(self) -> str:
        return "\n".join(self.lines)
