#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Thin fetchers for the upstream market APIs.

Every fetcher returns a normalized scalar, dataclass or list of HistoryPoint.
Transport errors and non-2xx statuses raise UpstreamUnavailable; a payload
that parses but lacks a numeric field raises UpstreamMalformed. Nothing here
defaults a missing number to zero.
"""

import re
import math
import logging
import datetime as dt
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

import ccxt
import pandas as pd
import requests

from errors import ConfigMissing, UpstreamMalformed, UpstreamUnavailable
from models import CoinStats, GlobalMetrics, GlobalVolume, HistoryPoint, IndexSnapshot

logger = logging.getLogger(__name__)

CMC_BASE = "https://pro-api.coinmarketcap.com"
OKX_BASE = "https://www.okx.com"
COINSTATS_FNG_URL = "https://api.coin-stats.com/v2/fear-greed"
ALTERNATIVE_FNG_URL = "https://api.alternative.me/fng/"
CMC_HOME_URL = "https://coinmarketcap.com/"

DEFAULT_TIMEOUT = 10
MS_THRESHOLD = 1_000_000_000_000     # epoch values above this are already milliseconds

VALUE_KEYS = ("value", "score", "fg_index", "value_score")
LATEST_VALUE_KEYS = ("value", "score", "fg_index")


# ------------------------------
# HTTP
# ------------------------------
def get_response(url: str, session: Optional[requests.Session] = None, **kwargs) -> requests.Response:
    http = session or requests
    kwargs.setdefault("timeout", DEFAULT_TIMEOUT)
    try:
        resp = http.get(url, **kwargs)
    except requests.RequestException as e:
        raise UpstreamUnavailable(f"GET {url} failed: {e}") from e
    if not resp.ok:
        raise UpstreamUnavailable(f"GET {url} returned {resp.status_code}")
    return resp


def get_json(url: str, session: Optional[requests.Session] = None, **kwargs) -> Any:
    resp = get_response(url, session=session, **kwargs)
    try:
        return resp.json()
    except ValueError as e:
        raise UpstreamMalformed(f"GET {url} did not return JSON") from e


def _cmc_headers(api_key: str) -> Dict[str, str]:
    if not api_key:
        raise ConfigMissing("Missing CMC_API_KEY")
    return {"accept": "application/json", "X-CMC_PRO_API_KEY": api_key}


# ------------------------------
# Parsing helpers
# ------------------------------
def parse_number(value: Any, what: str = "value") -> float:
    if value is None or isinstance(value, bool):
        raise UpstreamMalformed(f"Missing numeric {what}")
    try:
        num = float(value)
    except (TypeError, ValueError) as e:
        raise UpstreamMalformed(f"Invalid numeric {what}: {value!r}") from e
    if math.isnan(num):
        raise UpstreamMalformed(f"Invalid numeric {what}: NaN")
    return num


def parse_index(value: Any, what: str = "fear & greed value") -> float:
    num = parse_number(value, what)
    if not 0 <= num <= 100:
        raise UpstreamMalformed(f"{what} out of range: {num}")
    return num


def _first_present(entry: Dict[str, Any], keys: Iterable[str]) -> Any:
    for k in keys:
        if entry.get(k) is not None:
            return entry[k]
    return None


def _scale_epoch(num: float) -> int:
    return int(num if num > MS_THRESHOLD else num * 1000)


def normalize_timestamp(primary: Any, fallbacks: Sequence[Any] = ()) -> Optional[int]:
    """Epoch milliseconds from the first source that parses, else None.

    Numbers (and numeric strings) are epoch seconds unless larger than 1e12,
    in which case they are already milliseconds. Other strings go through
    calendar parsing and are read as UTC when they carry no offset.
    """
    for source in (primary, *fallbacks):
        if source is None or isinstance(source, bool):
            continue
        if isinstance(source, (int, float)):
            if math.isnan(source):
                continue
            return _scale_epoch(source)
        if isinstance(source, str):
            text = source.strip()
            if re.fullmatch(r"\d+(\.\d+)?", text):
                return _scale_epoch(float(text))
            try:
                ts = pd.to_datetime(text, utc=True)
            except (ValueError, TypeError, OverflowError):
                continue
            if pd.isna(ts):
                continue
            return int(ts.value // 1_000_000)
    return None


def ms_to_date(ms: int) -> str:
    return dt.datetime.fromtimestamp(ms / 1000, tz=dt.timezone.utc).strftime("%Y-%m-%d")


# ------------------------------
# Fear & greed history payload shapes
# ------------------------------
def _shape_bare(payload: Any) -> Optional[list]:
    return payload if isinstance(payload, list) else None


def _shape_data(payload: Any) -> Optional[list]:
    data = payload.get("data") if isinstance(payload, dict) else None
    return data if isinstance(data, list) else None


def _shape_nested(key: str) -> Callable[[Any], Optional[list]]:
    def pick(payload: Any) -> Optional[list]:
        data = payload.get("data") if isinstance(payload, dict) else None
        inner = data.get(key) if isinstance(data, dict) else None
        return inner if isinstance(inner, list) else None
    return pick


HISTORY_SHAPES: List[Tuple[str, Callable[[Any], Optional[list]]]] = [
    ("bare", _shape_bare),
    ("data", _shape_data),
    ("data.data", _shape_nested("data")),
    ("data.values", _shape_nested("values")),
    ("data.points", _shape_nested("points")),
    ("data.quotes", _shape_nested("quotes")),
]


def extract_history_entries(payload: Any) -> list:
    for name, pick in HISTORY_SHAPES:
        entries = pick(payload)
        if entries:
            logger.debug("History entries found under %s", name)
            return entries
    raise UpstreamMalformed("No historical fear & greed data in response")


def normalize_history_entries(entries: list) -> List[Tuple[int, float]]:
    """(timestamp_ms, value) pairs, newest first. Unusable entries are skipped."""
    out = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        ts = normalize_timestamp(entry.get("timestamp"), [entry.get("time"), entry.get("updated_at")])
        raw = _first_present(entry, VALUE_KEYS)
        if ts is None or raw is None:
            continue
        out.append((ts, parse_index(raw)))
    if not out:
        raise UpstreamMalformed("Unable to parse historical fear & greed data")
    out.sort(key=lambda p: p[0], reverse=True)
    return out


def pick_yesterday(normalized: List[Tuple[int, float]], today: Optional[str] = None) -> float:
    today = today or dt.datetime.now(dt.timezone.utc).strftime("%Y-%m-%d")
    for ts, value in normalized:
        if ms_to_date(ts) != today:
            return value
    return normalized[0][1]


# ------------------------------
# Fear & greed index
# ------------------------------
def fetch_fear_index_latest(api_key: str, session: Optional[requests.Session] = None) -> float:
    j = get_json(f"{CMC_BASE}/v3/fear-and-greed/latest", session=session, headers=_cmc_headers(api_key))
    data = j.get("data") if isinstance(j, dict) else None
    raw = _first_present(data, LATEST_VALUE_KEYS) if isinstance(data, dict) else None
    return parse_index(raw)


def fetch_fear_index_yesterday(api_key: str, session: Optional[requests.Session] = None,
                               today: Optional[str] = None) -> float:
    j = get_json(f"{CMC_BASE}/v3/fear-and-greed/historical", session=session,
                 headers=_cmc_headers(api_key), params={"limit": 10})
    normalized = normalize_history_entries(extract_history_entries(j))
    return pick_yesterday(normalized, today)


def get_fear_index(api_key: str, session: Optional[requests.Session] = None) -> IndexSnapshot:
    with ThreadPoolExecutor(max_workers=2) as pool:
        latest = pool.submit(fetch_fear_index_latest, api_key, session)
        yesterday = pool.submit(fetch_fear_index_yesterday, api_key, session)
        return IndexSnapshot(today_value=latest.result(), yesterday_value=yesterday.result())


def fetch_fear_index_coinstats(session: Optional[requests.Session] = None) -> IndexSnapshot:
    j = get_json(COINSTATS_FNG_URL, session=session)
    try:
        now, yesterday = j["now"]["value"], j["yesterday"]["value"]
    except (KeyError, TypeError) as e:
        raise UpstreamMalformed("coin-stats fear & greed payload lacks now/yesterday") from e
    return IndexSnapshot(parse_index(now, "today's index"), parse_index(yesterday, "yesterday's index"))


def fetch_fear_index_from_page(session: Optional[requests.Session] = None) -> float:
    html = get_response(CMC_HOME_URL, session=session).text
    match = re.search(r'"score":([^,]+)', html)
    if not match:
        raise UpstreamMalformed("Failed to parse coinmarketcap.com")
    return parse_index(match.group(1), "page score")


def get_fear_index_from_page(session: Optional[requests.Session] = None) -> IndexSnapshot:
    """Keyless snapshot: today's score scraped from the home page, yesterday's from coin-stats."""
    with ThreadPoolExecutor(max_workers=2) as pool:
        score = pool.submit(fetch_fear_index_from_page, session)
        stats = pool.submit(fetch_fear_index_coinstats, session)
        return IndexSnapshot(today_value=score.result(), yesterday_value=stats.result().yesterday_value)


def fetch_fear_history(days: int = 30, session: Optional[requests.Session] = None) -> List[HistoryPoint]:
    j = get_json(ALTERNATIVE_FNG_URL, session=session, params={"limit": days})
    normalized = normalize_history_entries(extract_history_entries(j))
    by_date: Dict[str, float] = {}
    for ts, value in normalized:           # newest first: keep the latest sample per day
        by_date.setdefault(ms_to_date(ts), value)
    return [HistoryPoint(d, by_date[d]) for d in sorted(by_date)]


# ------------------------------
# CoinMarketCap metrics
# ------------------------------
def fetch_global_metrics(api_key: str, session: Optional[requests.Session] = None) -> GlobalMetrics:
    j = get_json(f"{CMC_BASE}/v1/global-metrics/quotes/latest", session=session, headers=_cmc_headers(api_key))
    try:
        data = j["data"]
        usd = data["quote"]["USD"]
    except (KeyError, TypeError) as e:
        raise UpstreamMalformed("Global metrics payload lacks data.quote.USD") from e
    volume = GlobalVolume(
        total_volume_24h=parse_number(usd.get("total_volume_24h"), "total_volume_24h"),
        total_market_cap=parse_number(usd.get("total_market_cap"), "total_market_cap"),
        total_market_cap_yesterday=parse_number(usd.get("total_market_cap_yesterday"), "total_market_cap_yesterday"),
        total_volume_24h_yesterday=parse_number(usd.get("total_volume_24h_yesterday"), "total_volume_24h_yesterday"),
        market_cap_change_pct=parse_number(usd.get("total_market_cap_yesterday_percentage_change"),
                                           "market cap change"),
        volume_change_pct=parse_number(usd.get("total_volume_24h_yesterday_percentage_change"), "volume change"),
    )
    return GlobalMetrics(
        btc_dominance=parse_number(data.get("btc_dominance"), "btc_dominance"),
        eth_dominance=parse_number(data.get("eth_dominance"), "eth_dominance"),
        volume=volume,
    )


def fetch_latest_stats(api_key: str, symbols: Sequence[str] = ("BTC",),
                       session: Optional[requests.Session] = None) -> Dict[str, CoinStats]:
    j = get_json(f"{CMC_BASE}/v1/cryptocurrency/listings/latest", session=session, headers=_cmc_headers(api_key))
    rows = j.get("data") if isinstance(j, dict) else None
    if not isinstance(rows, list):
        raise UpstreamMalformed("Listings payload lacks data")
    wanted = set(symbols)
    stats: Dict[str, CoinStats] = {}
    for row in rows:
        sym = row.get("symbol")
        if sym not in wanted or sym in stats:
            continue
        usd = (row.get("quote") or {}).get("USD") or {}
        stats[sym] = CoinStats(
            price=parse_number(usd.get("price"), f"{sym} price"),
            volume_24h=parse_number(usd.get("volume_24h"), f"{sym} volume_24h"),
            percent_change_1h=parse_number(usd.get("percent_change_1h"), f"{sym} percent_change_1h"),
            percent_change_24h=parse_number(usd.get("percent_change_24h"), f"{sym} percent_change_24h"),
            market_cap=parse_number(usd.get("market_cap"), f"{sym} market_cap"),
            dominance=(parse_number(usd["market_cap_dominance"], f"{sym} dominance")
                       if usd.get("market_cap_dominance") is not None else None),
        )
    missing = wanted - set(stats)
    if missing:
        logger.warning("Listings did not include %s", ", ".join(sorted(missing)))
    return stats


# ------------------------------
# OKX (optionally through a relay)
# ------------------------------
def fetch_coin_price(coin: str, base_url: str = OKX_BASE, auth: Optional[Tuple[str, str]] = None,
                     session: Optional[requests.Session] = None) -> float:
    j = get_json(f"{base_url}/api/v5/market/index-components", session=session,
                 params={"index": f"{coin}-USDT"}, auth=auth)
    data = j.get("data") if isinstance(j, dict) else None
    if not isinstance(data, dict):
        raise UpstreamMalformed(f"OKX index components for {coin} lack data")
    return parse_number(data.get("last"), f"{coin} last price")


def fetch_funding_rate(inst_id: str = "BTC-USDT-SWAP", base_url: str = OKX_BASE,
                       auth: Optional[Tuple[str, str]] = None,
                       session: Optional[requests.Session] = None) -> float:
    """Current funding rate in percent per period, rounded to 3 decimals."""
    j = get_json(f"{base_url}/api/v5/public/funding-rate", session=session,
                 params={"instId": inst_id}, auth=auth)
    rows = j.get("data") if isinstance(j, dict) else None
    raw = rows[0].get("fundingRate") if isinstance(rows, list) and rows else None
    if not raw:
        raise UpstreamMalformed(f"Failed to fetch funding rate for {inst_id}")
    return round(parse_number(raw, "funding rate") * 100, 3)


# ------------------------------
# Daily candles (ccxt)
# ------------------------------
def fetch_daily_closes(symbol: str, days: int = 30, exchange: Optional[ccxt.Exchange] = None) -> List[HistoryPoint]:
    ex = exchange or ccxt.binance()
    try:
        ohlcv = ex.fetch_ohlcv(symbol, timeframe="1d", limit=days)
    except ccxt.BaseError as e:
        raise UpstreamUnavailable(f"fetch_ohlcv {symbol} failed: {e}") from e
    if not ohlcv:
        raise UpstreamMalformed(f"No candles returned for {symbol}")
    df = pd.DataFrame([row[:6] for row in ohlcv], columns=["ts", "open", "high", "low", "close", "vol"])
    df["close"] = pd.to_numeric(df["close"], errors="coerce")
    if df["close"].isna().any():
        raise UpstreamMalformed(f"Non-numeric close in {symbol} candles")
    df["date"] = pd.to_datetime(df["ts"], unit="ms", utc=True).dt.strftime("%Y-%m-%d")
    df = df.drop_duplicates("date", keep="last").sort_values("date")
    return [HistoryPoint(d, float(c)) for d, c in zip(df["date"], df["close"])]
