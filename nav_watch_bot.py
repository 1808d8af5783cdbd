#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# nav_watch_bot.py
# Bybit leveraged token watch: alert when spot price drifts from NAV by more than the threshold.
import sys
import logging
import argparse
from typing import Optional, Tuple

import requests

from errors import BriefError, UpstreamMalformed
from market_clients import get_json, parse_number
from settings import Config, load_config
from telegram_notify import send_text

logger = logging.getLogger(__name__)

BYBIT_BASE = "https://api.bybit.com"


def fetch_token_price(coin: str, session: Optional[requests.Session] = None) -> float:
    j = get_json(f"{BYBIT_BASE}/v5/market/tickers", session=session,
                 params={"category": "spot", "symbol": f"{coin}USDT"})
    try:
        raw = j["result"]["list"][0]["lastPrice"]
    except (KeyError, IndexError, TypeError) as e:
        raise UpstreamMalformed(f"No {coin}USDT ticker in Bybit response") from e
    return parse_number(raw, f"{coin} price")


def fetch_token_nav(coin: str, session: Optional[requests.Session] = None) -> float:
    j = get_json(f"{BYBIT_BASE}/v5/spot-lever-token/reference", session=session, params={"ltCoin": coin})
    nav = (j.get("result") or {}).get("nav") if isinstance(j, dict) else None
    value = parse_number(nav, f"{coin} NAV")
    if value <= 0:
        raise UpstreamMalformed(f"Non-positive {coin} NAV: {value}")
    return value


def check_deviation(price: float, nav: float, threshold: float = 0.03) -> Tuple[float, bool]:
    diff = abs(price - nav) / nav
    return diff, diff > threshold


def format_alert(coin: str, price: float, nav: float, diff: float) -> str:
    return f"⚠️ {coin} alert\nPrice: {price}\nNAV: {nav}\nDeviation: {diff * 100:.2f}%"


def run(cfg: Config, session: Optional[requests.Session] = None) -> Optional[str]:
    watch = cfg.ruleset["nav_watch"]
    coin = watch["coin"]
    price = fetch_token_price(coin, session)
    nav = fetch_token_nav(coin, session)
    diff, breached = check_deviation(price, nav, float(watch["threshold"]))
    logger.info("%s price %s, NAV %s, diff %.2f%%", coin, price, nav, diff * 100)
    if not breached:
        return None
    msg = format_alert(coin, price, nav, diff)
    send_text(cfg, msg, session=session)
    return msg


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Leveraged token NAV deviation watch")
    parser.add_argument("--ruleset", default=None, help="path to ruleset.yml")
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    try:
        alert = run(load_config(ruleset_path=args.ruleset))
    except BriefError:
        logger.exception("Run error")
        return 1
    print("[nav_watch_bot]", "alert sent" if alert else "deviation normal")
    return 0


if __name__ == "__main__":
    sys.exit(main())
