import copy
import dataclasses
import json
from urllib.parse import unquote

import pytest

from models import CoinStats, HistoryPoint, RatioPoint, Report
from report import (
    build_chart_config, build_report, chart_url, compose_lines, format_value, prettify_big_number,
    render_html, stringify_coin_stats, stringify_global_volume,
)
from settings import DEFAULT_RULESET


@pytest.mark.parametrize("n, expected", [
    (999_999, "999,999.00"),
    (1_000_000, "1.00 m"),
    (1_000_000_000, "1.00 b"),
    (1_000_000_000_000, "1.00 t"),
    (1_234.5, "1,234.50"),
    (987_654_321, "987.65 m"),
    (2_500_000_000_000_000, "2,500.00 t"),
])
def test_prettify_big_number(n, expected):
    assert prettify_big_number(n) == expected


def test_format_value():
    assert format_value(45.7) == "45"
    assert format_value(45.7, "fixed") == "45.70"
    assert format_value(-1.5) == "-2"
    with pytest.raises(ValueError):
        format_value(1.0, "round")


def test_stringify_coin_stats(btc_stats):
    assert stringify_coin_stats(btc_stats, total_volume_24h=100e9) == [
        "Dominance: 52%",
        "1h change: 0%",
        "24h change: -2%",
        "24h turnover: 2%",
        "24h volume: 30.00 b",
        "24h volume share: 30%",
    ]


def test_stringify_coin_stats_without_optionals():
    stats = CoinStats(price=0.2, volume_24h=1.5e9, percent_change_1h=1.25, percent_change_24h=3.5, market_cap=3e10)
    assert stringify_coin_stats(stats, precision="fixed") == [
        "1h change: 1.25%",
        "24h change: 3.50%",
        "24h turnover: 5.00%",
        "24h volume: 1.50 b",
    ]


def test_stringify_global_volume(snapshot):
    assert stringify_global_volume(snapshot.metrics.volume) == [
        "Total market cap: 2.40 t",
        "Market cap change: 1.23%",
        "Volume change: -5.68%",
    ]


def test_compose_lines(snapshot):
    assert compose_lines(snapshot) == [
        "Fear & Greed: 61 (yesterday: 55)",
        "BTC: 65000",
        "Funding rate: 0.01% APR 11%",
        "ETH: 3400",
        "Position (funding): 67%",
        "",
        "Dominance: 52%",
        "1h change: 0%",
        "24h change: -2%",
        "24h turnover: 2%",
        "24h volume: 30.00 b",
        "24h volume share: 30%",
        "",
        "Total market cap: 2.40 t",
        "Market cap change: 1.23%",
        "Volume change: -5.68%",
    ]


def test_compose_lines_fixed_with_extras(snapshot, btc_stats):
    doge = CoinStats(price=0.1234, volume_24h=1e9, percent_change_1h=0.1, percent_change_24h=-3.456, market_cap=1.8e10)
    snap = dataclasses.replace(
        snapshot,
        coins={"BTC": btc_stats, "DOGE": doge},
        ratio_series=[RatioPoint("2024-01-01", 20.0, 0.0), RatioPoint("2024-01-02", 21.5, 100.0)],
    )
    lines = compose_lines(snap, policy="action", precision="fixed")
    assert lines[0] == "Fear & Greed: 61.00 (yesterday: 55.00)"
    assert lines[1] == "BTC: 65,000.50"
    assert lines[4] == "Action: hold"
    assert lines[5] == "BTC/Gold: 21.50 (100/100 over 2d, as of 2024-01-02)"
    assert "DOGE: 0.12 (-3.46% 24h)" in lines


@pytest.mark.parametrize("policy, line", [
    ("size-10-20-40-80", "Position size: 61%"),
    ("funding", "Position (funding): 67%"),
])
def test_compose_lines_labels_policy_for_readers(snapshot, policy, line):
    lines = compose_lines(snapshot, policy=policy)
    assert lines[4] == line


HISTORY = [HistoryPoint("2024-01-01", 40.0), HistoryPoint("2024-01-02", 55.0), HistoryPoint("2024-01-03", 61.0)]


def test_chart_config_primary_only():
    cfg = build_chart_config(HISTORY)
    assert cfg["type"] == "line"
    assert cfg["data"]["labels"] == ["1-1", "1-2", "1-3"]
    assert len(cfg["data"]["datasets"]) == 1
    y = cfg["options"]["scales"]["yAxes"]
    assert len(y) == 1
    assert y[0]["ticks"] == {"min": 0, "max": 100, "stepSize": 20}
    notes = cfg["options"]["plugins"]["annotation"]["annotations"]
    assert [a["value"] for a in notes] == [25, 50, 75]
    assert [a["label"]["content"] for a in notes] == ["Fear", "Neutral", "Greed"]


def test_chart_config_with_price_and_ratio():
    prices = [HistoryPoint("2024-01-02", 43000.0), HistoryPoint("2024-01-03", 44000.0)]
    ratios = [RatioPoint("2024-01-03", 20.0, 0.0)]
    cfg = build_chart_config(HISTORY, prices, ratios)
    price_ds, ratio_ds = cfg["data"]["datasets"][1:]
    assert price_ds["yAxisID"] == "price"
    assert price_ds["data"] == [None, 43000.0, 44000.0]
    assert cfg["options"]["scales"]["yAxes"][1]["position"] == "right"
    assert ratio_ds["yAxisID"] == "index"
    assert ratio_ds["borderDash"]
    assert ratio_ds["data"] == [None, None, 0.0]
    assert ratio_ds["label"] == "BTC/Gold (normalized, to 1-3)"


def test_chart_config_needs_history():
    with pytest.raises(ValueError):
        build_chart_config([])


def test_chart_url_round_trips_config():
    cfg = build_chart_config(HISTORY)
    url = chart_url(cfg)
    assert url.startswith("https://quickchart.io/chart?c=")
    assert url.endswith("&width=800&height=400&backgroundColor=white")
    encoded = url[len("https://quickchart.io/chart?c="):url.index("&width=")]
    assert json.loads(unquote(encoded)) == cfg


def test_build_report_with_chart(snapshot):
    ruleset = copy.deepcopy(DEFAULT_RULESET)
    ruleset["chart"]["enabled"] = True
    snap = dataclasses.replace(snapshot, fear_history=HISTORY)
    report = build_report(snap, ruleset)
    assert report.lines[0] == "Fear & Greed: 61 (yesterday: 55)"
    assert report.chart_url.startswith("https://quickchart.io/chart?c=")


def test_build_report_without_chart(snapshot):
    report = build_report(snapshot, DEFAULT_RULESET)
    assert report.chart_url is None
    assert report.text.startswith("Fear & Greed: 61")


def test_render_html_escapes():
    page = render_html(Report(lines=["a < b", "c & d"], chart_url="https://quickchart.io/chart?c=x&width=1"))
    assert "a &lt; b<br>" in page
    assert "c &amp; d" in page
    assert 'src="https://quickchart.io/chart?c=x&amp;width=1"' in page
