#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Report composer: snapshot -> ordered text lines and a QuickChart line-chart URL.
The chart is described declaratively; QuickChart renders it, we never touch pixels.
"""

import html
import json
import math
from typing import Any, Dict, List, Optional

from requests.utils import quote

from models import CoinStats, GlobalVolume, HistoryPoint, MarketSnapshot, RatioPoint, Report
from recommend import POLICY_LABELS, annualize_funding, get_policy

QUICKCHART_URL = "https://quickchart.io/chart"

MILLION = 1_000_000
BILLION = 1_000_000_000
TRILLION = 1_000_000_000_000


# ------------------------------
# Number formatting
# ------------------------------
def format_number_with_commas(n: float) -> str:
    return f"{n:,.2f}"


def prettify_big_number(n: float) -> str:
    if n < MILLION:
        return format_number_with_commas(n)
    if n < BILLION:
        return f"{format_number_with_commas(n / MILLION)} m"
    if n < TRILLION:
        return f"{format_number_with_commas(n / BILLION)} b"
    return f"{format_number_with_commas(n / TRILLION)} t"


def format_value(n: float, precision: str = "floor") -> str:
    """Display-only number: floored integer or 2-decimal fixed point."""
    if precision == "fixed":
        return f"{n:.2f}"
    if precision == "floor":
        return str(math.floor(n))
    raise ValueError(f"Unknown precision {precision!r}")


def format_price(n: float, precision: str = "floor") -> str:
    return format_number_with_commas(n) if precision == "fixed" else str(math.floor(n))


# ------------------------------
# Line templates
# ------------------------------
def stringify_coin_stats(stats: CoinStats, total_volume_24h: Optional[float] = None,
                         precision: str = "floor") -> List[str]:
    def f(v):
        return format_value(v, precision)

    lines = []
    if stats.dominance is not None:
        lines.append(f"Dominance: {f(stats.dominance)}%")
    lines += [
        f"1h change: {f(stats.percent_change_1h)}%",
        f"24h change: {f(stats.percent_change_24h)}%",
        f"24h turnover: {f(100 * stats.volume_24h / stats.market_cap)}%",
        f"24h volume: {prettify_big_number(stats.volume_24h)}",
    ]
    if total_volume_24h:
        lines.append(f"24h volume share: {f(100 * stats.volume_24h / total_volume_24h)}%")
    return lines


def stringify_global_volume(volume: GlobalVolume) -> List[str]:
    return [
        f"Total market cap: {prettify_big_number(volume.total_market_cap)}",
        f"Market cap change: {volume.market_cap_change_pct:.2f}%",
        f"Volume change: {volume.volume_change_pct:.2f}%",
    ]


def compose_lines(snap: MarketSnapshot, policy: str = "funding", precision: str = "floor") -> List[str]:
    idx = snap.index
    apr = annualize_funding(snap.funding_rate)
    recommendation = get_policy(policy)(snap)
    lines = [
        f"Fear & Greed: {format_value(idx.today_value, precision)} "
        f"(yesterday: {format_value(idx.yesterday_value, precision)})",
        f"BTC: {format_price(snap.btc_price, precision)}",
        f"Funding rate: {snap.funding_rate}% APR {round(apr)}%",
        f"ETH: {format_price(snap.eth_price, precision)}",
        f"{POLICY_LABELS[policy]}: {recommendation}",
    ]
    if snap.ratio_series:
        last = snap.ratio_series[-1]
        lines.append(f"BTC/Gold: {last.ratio:.2f} ({last.normalized_ratio:.0f}/100 over {len(snap.ratio_series)}d, "
                     f"as of {last.date})")

    btc = snap.coins.get("BTC")
    if btc is not None:
        btc_dom = CoinStats(btc.price, btc.volume_24h, btc.percent_change_1h, btc.percent_change_24h,
                            btc.market_cap, dominance=snap.metrics.btc_dominance)
        lines += [""] + stringify_coin_stats(btc_dom, snap.metrics.volume.total_volume_24h, precision)

    others = [s for s in snap.coins if s != "BTC"]
    if others:
        lines.append("")
        for sym in others:
            c = snap.coins[sym]
            lines.append(f"{sym}: {format_price(c.price, precision)} "
                         f"({format_value(c.percent_change_24h, precision)}% 24h)")

    lines += [""] + stringify_global_volume(snap.metrics.volume)
    return lines


# ------------------------------
# Chart
# ------------------------------
REFERENCE_LINES = [
    (25, "rgba(255, 99, 132, 0.5)", "Fear"),
    (50, "rgba(255, 206, 86, 0.5)", "Neutral"),
    (75, "rgba(54, 162, 235, 0.5)", "Greed"),
]


def _short_label(date: str) -> str:
    _, m, d = date.split("-")
    return f"{int(m)}-{int(d)}"


def build_chart_config(history: List[HistoryPoint],
                       price_series: Optional[List[HistoryPoint]] = None,
                       ratio_series: Optional[List[RatioPoint]] = None,
                       price_label: str = "BTC price") -> Dict[str, Any]:
    if not history:
        raise ValueError("No history data provided for chart generation")

    dates = [p.date for p in history]
    datasets = [{
        "label": "Fear & Greed Index",
        "data": [p.value for p in history],
        "yAxisID": "index",
        "fill": True,
        "backgroundColor": "rgba(75, 192, 192, 0.2)",
        "borderColor": "rgb(75, 192, 192)",
        "borderWidth": 2,
        "pointRadius": 3,
        "tension": 0.3,
    }]
    y_axes = [{
        "id": "index",
        "position": "left",
        "ticks": {"min": 0, "max": 100, "stepSize": 20},
        "scaleLabel": {"display": True, "labelString": "Index"},
    }]

    if price_series:
        prices = {p.date: p.value for p in price_series}
        datasets.append({
            "label": price_label,
            "data": [prices.get(d) for d in dates],
            "yAxisID": "price",
            "fill": False,
            "borderColor": "rgb(255, 159, 64)",
            "borderWidth": 2,
            "pointRadius": 0,
        })
        y_axes.append({
            "id": "price",
            "position": "right",
            "gridLines": {"drawOnChartArea": False},
            "scaleLabel": {"display": True, "labelString": price_label},
        })

    if ratio_series:
        ratios = {p.date: round(p.normalized_ratio, 2) for p in ratio_series}
        datasets.append({
            "label": f"BTC/Gold (normalized, to {_short_label(ratio_series[-1].date)})",
            "data": [ratios.get(d) for d in dates],
            "yAxisID": "index",
            "fill": False,
            "borderColor": "rgb(153, 102, 255)",
            "borderDash": [6, 4],
            "borderWidth": 2,
            "pointRadius": 0,
        })

    annotations = [{
        "type": "line",
        "mode": "horizontal",
        "scaleID": "index",
        "value": value,
        "borderColor": color,
        "borderWidth": 1,
        "borderDash": [5, 5],
        "label": {"enabled": True, "content": label, "position": "left"},
    } for value, color, label in REFERENCE_LINES]

    return {
        "type": "line",
        "data": {"labels": [_short_label(d) for d in dates], "datasets": datasets},
        "options": {
            "title": {"display": True, "text": f"Fear & Greed Index, last {len(history)} days", "fontSize": 18},
            "scales": {
                "yAxes": y_axes,
                "xAxes": [{"ticks": {"maxRotation": 45, "minRotation": 45}}],
            },
            "legend": {"display": True, "position": "top"},
            "plugins": {"annotation": {"annotations": annotations}},
        },
    }


def chart_url(config: Dict[str, Any], width: int = 800, height: int = 400, background: str = "white") -> str:
    encoded = quote(json.dumps(config, separators=(",", ":")), safe="")
    return f"{QUICKCHART_URL}?c={encoded}&width={width}&height={height}&backgroundColor={background}"


def build_report(snap: MarketSnapshot, ruleset: Dict[str, Any]) -> Report:
    lines = compose_lines(snap, ruleset["recommendation"]["policy"], ruleset["format"]["precision"])
    chart = ruleset["chart"]
    url = None
    if chart["enabled"] and snap.fear_history:
        config = build_chart_config(snap.fear_history, snap.btc_history, snap.ratio_series)
        url = chart_url(config, chart["width"], chart["height"], chart["background"])
    return Report(lines=lines, chart_url=url)


def render_html(report: Report, title: str = "Daily Market Brief") -> str:
    body = "<br>\n".join(html.escape(line) for line in report.lines)
    img = f'\n<p><img src="{html.escape(report.chart_url)}" alt="chart"></p>' if report.chart_url else ""
    return (f"<!doctype html>\n<html><head><meta charset=\"utf-8\"><title>{html.escape(title)}</title></head>\n"
            f"<body>\n<h1>{html.escape(title)}</h1>\n<p>{body}</p>{img}\n</body></html>\n")
