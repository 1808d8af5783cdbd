#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Recommendation lookups. All functions are total over floats: values
outside 0..100 (or a negative funding rate) clamp to the nearest end,
and a NaN reading yields the "n/a" label rather than an exception.

Policies share one signature, policy(snapshot) -> display label, so the
deployment picks one by name from POLICIES.
"""

from typing import Callable, Dict, List, Sequence, Tuple

import numpy as np

from models import MarketSnapshot

# ------------------------------
# Discrete action table, half-open [lo, hi)
# ------------------------------
ACTION_TABLE: List[Tuple[float, str]] = [
    (25.0, "buy,cooldown 1d"),
    (50.0, "buy,cooldown 7d"),
    (75.0, "hold"),
    (85.0, "sell,cooldown 5d"),
]
ACTION_TOP = "sell,cooldown 1d"
NOT_AVAILABLE = "n/a"


def discrete_action(index: float) -> str:
    if np.isnan(index):
        return NOT_AVAILABLE
    for upper, label in ACTION_TABLE:
        if index < upper:
            return label
    return ACTION_TOP


# ------------------------------
# Continuous position size (fraction of capital)
# ------------------------------
SIZE_MIN, SIZE_MAX = 0.25, 3.0

BREAKPOINTS: Dict[str, Tuple[Sequence[float], Sequence[float]]] = {
    "10-20-40-80": ([10.0, 20.0, 40.0, 80.0], [3.0, 2.0, 1.0, 0.25]),
    "20-40-60-80": ([20.0, 40.0, 60.0, 80.0], [3.0, 1.5, 0.75, 0.25]),
}


def position_size(index: float, variant: str = "20-40-60-80") -> float:
    xp, fp = BREAKPOINTS[variant]
    # np.interp holds the end values outside the breakpoints
    return float(np.clip(np.interp(index, xp, fp), SIZE_MIN, SIZE_MAX))


# ------------------------------
# Funding-rate keyed size
# ------------------------------
FUNDING_CAP = 0.7


def annualize_funding(rate_pct: float, payments_per_day: int = 3) -> float:
    """Per-period percent -> annual percent."""
    return rate_pct * 365 * payments_per_day


def position_size_by_funding(apr: float) -> float:
    """75% of capital at zero/negative funding down to 25% at 70% APR (apr as a fraction)."""
    clamped = float(np.clip(apr, 0.0, FUNDING_CAP))
    return 0.25 + (1 - clamped / FUNDING_CAP) * 0.5


def as_percent(fraction: float) -> str:
    if np.isnan(fraction):
        return NOT_AVAILABLE
    return f"{round(fraction * 100)}%"


# ------------------------------
# Named policies
# ------------------------------
def _action_policy(snap: MarketSnapshot) -> str:
    return discrete_action(snap.index.today_value)


def _size_policy(variant: str) -> Callable[[MarketSnapshot], str]:
    def policy(snap: MarketSnapshot) -> str:
        return as_percent(position_size(snap.index.today_value, variant))
    return policy


def _funding_policy(snap: MarketSnapshot) -> str:
    return as_percent(position_size_by_funding(annualize_funding(snap.funding_rate) / 100))


POLICIES: Dict[str, Callable[[MarketSnapshot], str]] = {
    "action": _action_policy,
    "size-10-20-40-80": _size_policy("10-20-40-80"),
    "size-20-40-60-80": _size_policy("20-40-60-80"),
    "funding": _funding_policy,
}

# what the brief prints in front of each policy's output
POLICY_LABELS: Dict[str, str] = {
    "action": "Action",
    "size-10-20-40-80": "Position size",
    "size-20-40-60-80": "Position size",
    "funding": "Position (funding)",
}


def get_policy(name: str) -> Callable[[MarketSnapshot], str]:
    try:
        return POLICIES[name]
    except KeyError:
        raise ValueError(f"Unknown recommendation policy {name!r}; choose from {', '.join(POLICIES)}") from None
