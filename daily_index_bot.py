#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Daily Index Bot
- Scheduled run: fetch fear & greed, dominance, volumes, funding and spot prices,
  compose the brief and push it to Telegram (plus a QuickChart image when enabled)
- On-demand run: handle_on_demand() checks the bearer secret and returns an HTML page
- All fetches run concurrently; any single failure aborts the whole brief
"""

import sys
import json
import logging
import argparse
import dataclasses
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from typing import Any, Callable, Dict, Optional, Tuple

import requests

import market_clients as mc
from errors import BriefError, ConfigMissing
from models import MarketSnapshot, Report
from report import build_report, render_html
from series import align_ratio, patch_today, today_utc
from settings import Config, load_config
from telegram_notify import send_photo, send_text

logger = logging.getLogger(__name__)

Job = Tuple[Callable[..., Any], tuple, Dict[str, Any]]


# ------------------------------
# Scatter / gather
# ------------------------------
def scatter_gather(jobs: Dict[str, Job], max_workers: int = 8) -> Dict[str, Any]:
    """Run every job concurrently; raise the first failure, otherwise return all results by name."""
    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        futures = {name: pool.submit(fn, *args, **kwargs) for name, (fn, args, kwargs) in jobs.items()}
        done, pending = wait(futures.values(), return_when=FIRST_EXCEPTION)
        for fut in pending:
            fut.cancel()
        for name, fut in futures.items():
            if fut in done and fut.exception() is not None:
                logger.error("Fetch %s failed: %s", name, fut.exception())
                raise fut.exception()
        return {name: fut.result() for name, fut in futures.items()}


def index_job(source: str, api_key: str, session: Optional[requests.Session] = None) -> Job:
    if source == "cmc":
        return mc.get_fear_index, (api_key, session), {}
    if source == "coinstats":
        return mc.fetch_fear_index_coinstats, (session,), {}
    if source == "page":
        return mc.get_fear_index_from_page, (session,), {}
    raise ValueError(f"Unknown index source {source!r}; choose from cmc, coinstats, page")


def gather_snapshot(cfg: Config, session: Optional[requests.Session] = None,
                    exchange: Any = None, today: Optional[str] = None) -> MarketSnapshot:
    rs = cfg.ruleset
    api_key = cfg.require("cmc_api_key")
    okx = {"base_url": cfg.okx_proxy_url or mc.OKX_BASE, "auth": cfg.okx_proxy_auth, "session": session}

    jobs: Dict[str, Job] = {
        "index": index_job(rs["index"]["source"], api_key, session),
        "metrics": (mc.fetch_global_metrics, (api_key, session), {}),
        "coins": (mc.fetch_latest_stats, (api_key, rs["coins"]["tracked"], session), {}),
        "funding": (mc.fetch_funding_rate, (rs["funding"]["inst_id"],), okx),
        "btc": (mc.fetch_coin_price, ("BTC",), okx),
        "eth": (mc.fetch_coin_price, ("ETH",), okx),
    }
    chart = rs["chart"]
    if chart["enabled"]:
        days = chart["history_days"]
        jobs["fear_history"] = (mc.fetch_fear_history, (days, session), {})
        jobs["btc_history"] = (mc.fetch_daily_closes, (chart["btc_symbol"], days, exchange), {})
        jobs["gold_history"] = (mc.fetch_daily_closes, (chart["gold_symbol"], days, exchange), {})

    res = scatter_gather(jobs)
    snap = MarketSnapshot(
        index=res["index"],
        metrics=res["metrics"],
        funding_rate=res["funding"],
        btc_price=res["btc"],
        eth_price=res["eth"],
        coins=res["coins"],
    )
    if chart["enabled"]:
        today = today or today_utc()
        snap.fear_history = patch_today(res["fear_history"], snap.index.today_value, today)
        snap.btc_history = patch_today(res["btc_history"], snap.btc_price, today)
        # gold has no live quote, so the ratio ends at the last shared close
        snap.ratio_series = align_ratio(snap.btc_history, res["gold_history"])
        if snap.ratio_series and snap.ratio_series[-1].date != today:
            logger.info("BTC/Gold ratio ends %s, before today %s", snap.ratio_series[-1].date, today)
    return snap


# ------------------------------
# Run
# ------------------------------
def dispatch(cfg: Config, report: Report, session: Optional[requests.Session] = None) -> Optional[int]:
    if report.chart_url:
        send_photo(cfg, report.chart_url, caption=report.lines[0], session=session)
    return send_text(cfg, report.text, session=session)


def run(cfg: Config, send: bool = True, session: Optional[requests.Session] = None,
        exchange: Any = None) -> Report:
    snap = gather_snapshot(cfg, session=session, exchange=exchange)
    report = build_report(snap, cfg.ruleset)
    logger.info("Composed brief with %d lines%s", len(report.lines), " and chart" if report.chart_url else "")
    if send:
        dispatch(cfg, report, session=session)
    return report


def handle_on_demand(authorization: Optional[str], cfg: Config, send: bool = False,
                     runner: Callable[..., Report] = run) -> Tuple[int, str, str]:
    """(status, content type, body) for an HTTP-style trigger.

    In production an unset CRON_SECRET refuses every request with a 500.
    The index comes from the ruleset's on_demand_source (the home-page score by default).
    """
    if cfg.production:
        try:
            secret = cfg.require("cron_secret")
        except ConfigMissing as e:
            logger.error("On-demand trigger refused: %s", e)
            return 500, "application/json", json.dumps({"error": str(e)})
        if authorization != f"Bearer {secret}":
            return 401, "application/json", json.dumps({"success": False})
    rs = cfg.ruleset
    cfg = dataclasses.replace(cfg, ruleset={**rs, "index": {**rs["index"], "source": rs["index"]["on_demand_source"]}})
    try:
        report = runner(cfg, send=send)
    except BriefError as e:
        logger.exception("On-demand brief failed")
        return 500, "application/json", json.dumps({"error": str(e)})
    return 200, "text/html; charset=utf-8", render_html(report)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Daily fear & greed / market brief")
    parser.add_argument("--no-send", action="store_true", help="print the brief instead of sending it")
    parser.add_argument("--chart", action="store_true", help="attach the 30-day chart regardless of ruleset")
    parser.add_argument("--ruleset", default=None, help="path to ruleset.yml")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    cfg = load_config(ruleset_path=args.ruleset)
    if args.chart:
        rs = cfg.ruleset
        cfg = dataclasses.replace(cfg, ruleset={**rs, "chart": {**rs["chart"], "enabled": True}})

    try:
        report = run(cfg, send=not args.no_send)
    except BriefError:
        logger.exception("Run error")
        return 1

    print(report.text)
    if report.chart_url:
        print(report.chart_url)
    status = "off" if (args.no_send or not cfg.telegram_enabled) else "ok"
    print(f"[daily_index_bot] {report.lines[0]} | Telegram: {status}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
