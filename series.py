#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Date-keyed series helpers: join two price histories into a ratio series
(e.g. BTC/gold) and patch in today's live value when an API lags a day.
"""

from typing import List, Optional
import datetime as dt

import pandas as pd

from models import HistoryPoint, RatioPoint


def today_utc() -> str:
    return dt.datetime.now(dt.timezone.utc).strftime("%Y-%m-%d")


def to_frame(history: List[HistoryPoint], name: str = "value") -> pd.DataFrame:
    df = pd.DataFrame([(p.date, p.value) for p in history], columns=["date", name])
    return df.set_index("date")


def align_ratio(series_a: List[HistoryPoint], series_b: List[HistoryPoint]) -> List[RatioPoint]:
    """Inner join on date; ratio = a/b, min-max scaled to 0..100 over the window."""
    df = to_frame(series_a, "a").join(to_frame(series_b, "b"), how="inner").sort_index()
    if df.empty:
        return []
    df["ratio"] = df["a"] / df["b"]
    lo, hi = df["ratio"].min(), df["ratio"].max()
    span = (hi - lo) or 1.0        # flat series maps to 0
    df["normalized"] = (df["ratio"] - lo) / span * 100.0
    return [RatioPoint(date=d, ratio=float(r), normalized_ratio=float(n))
            for d, r, n in zip(df.index, df["ratio"], df["normalized"])]


def patch_today(history: List[HistoryPoint], live_value: float,
                today: Optional[str] = None) -> List[HistoryPoint]:
    today = today or today_utc()
    if any(p.date == today for p in history):
        return list(history)
    patched = list(history) + [HistoryPoint(today, float(live_value))]
    return patched[1:] if history else patched
