#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Configuration for the brief bots.
- Secrets come from the environment (a local .env is loaded first)
- Policy knobs come from DEFAULT_RULESET, overridable via ruleset.yml
- load_config() builds one frozen Config at startup; everything else takes it by parameter
"""

import os
import copy
import logging
from dataclasses import dataclass, field
from typing import Dict, Any, Optional, Tuple

import yaml
from dotenv import load_dotenv

from errors import ConfigMissing

logger = logging.getLogger(__name__)

# ------------------------------
# Defaults (overridable via ruleset.yml)
# ------------------------------
DEFAULT_RULESET: Dict[str, Any] = {
    "recommendation": {"policy": "funding"},     # action | size-10-20-40-80 | size-20-40-60-80 | funding
    "index": {"source": "cmc", "on_demand_source": "page"},   # cmc | coinstats | page
    "format": {"precision": "floor"},            # floor | fixed
    "coins": {"tracked": ["BTC", "ETH", "DOGE"]},
    "chart": {
        "enabled": False,
        "history_days": 30,
        "gold_symbol": "PAXG/USDT",
        "btc_symbol": "BTC/USDT",
        "width": 800,
        "height": 400,
        "background": "white",
    },
    "funding": {"inst_id": "BTC-USDT-SWAP"},
    "nav_watch": {"coin": "ETH3L", "threshold": 0.03},
}


def load_ruleset(path: str = "ruleset.yml") -> Dict[str, Any]:
    cfg = copy.deepcopy(DEFAULT_RULESET)
    if not os.path.exists(path):
        return cfg
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    # one level of shallow merge per section
    for section, defaults in cfg.items():
        cfg[section] = {**defaults, **(data.get(section) or {})}
    logger.info("Loaded ruleset from %s", path)
    return cfg


@dataclass(frozen=True)
class Config:
    cmc_api_key: str = ""
    bot_token: str = ""
    chat_id: str = ""
    cron_secret: str = ""
    okx_proxy_url: str = ""
    okx_proxy_auth: Optional[Tuple[str, str]] = None
    production: bool = False
    ruleset: Dict[str, Any] = field(default_factory=lambda: copy.deepcopy(DEFAULT_RULESET))

    @property
    def telegram_enabled(self) -> bool:
        return bool(self.bot_token and self.chat_id)

    @property
    def policy(self) -> str:
        return self.ruleset["recommendation"]["policy"]

    @property
    def precision(self) -> str:
        return self.ruleset["format"]["precision"]

    def require(self, name: str) -> str:
        value = getattr(self, name, "")
        if not value:
            raise ConfigMissing(f"Missing {name.upper()}")
        return value


def load_config(env: Optional[Dict[str, str]] = None, ruleset_path: Optional[str] = None) -> Config:
    if env is None:
        load_dotenv()
        env = dict(os.environ)
    proxy_user = env.get("OKX_PROXY_USER", "")
    proxy_auth = (proxy_user, env.get("OKX_PROXY_PASSWORD", "")) if proxy_user else None
    path = ruleset_path or env.get("RULESET_PATH", "ruleset.yml")
    return Config(
        cmc_api_key=env.get("CMC_API_KEY", ""),
        bot_token=env.get("BOT_TOKEN", ""),
        chat_id=env.get("CHAT_ID", ""),
        cron_secret=env.get("CRON_SECRET", ""),
        okx_proxy_url=env.get("OKX_PROXY_URL", "").rstrip("/"),
        okx_proxy_auth=proxy_auth,
        production=env.get("APP_ENV", "") == "production",
        ruleset=load_ruleset(path),
    )
