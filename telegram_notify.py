#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Telegram delivery. Without a bot token + chat id both calls log and return None.
"""

import logging
from typing import Any, Dict, Optional

import requests

from errors import DeliveryFailed
from settings import Config

logger = logging.getLogger(__name__)

TELEGRAM_API = "https://api.telegram.org"


def _post(cfg: Config, method: str, payload: Dict[str, Any],
          session: Optional[requests.Session] = None) -> Optional[int]:
    if not cfg.telegram_enabled:
        logger.info("No chat id, skip %s", method)
        return None
    http = session or requests
    url = f"{TELEGRAM_API}/bot{cfg.bot_token}/{method}"
    try:
        r = http.post(url, json={"chat_id": cfg.chat_id, **payload}, timeout=10)
    except requests.RequestException as e:
        raise DeliveryFailed(f"Telegram {method} failed: {e}") from e
    if r.status_code != 200:
        raise DeliveryFailed(f"Telegram {method} returned {r.status_code}: {r.text[:200]}")
    return r.json().get("result", {}).get("message_id")


def send_text(cfg: Config, text: str, session: Optional[requests.Session] = None) -> Optional[int]:
    return _post(cfg, "sendMessage", {"text": text}, session)


def send_photo(cfg: Config, image_url: str, caption: str = "",
               session: Optional[requests.Session] = None) -> Optional[int]:
    # Telegram caps photo captions at 1024 characters
    return _post(cfg, "sendPhoto", {"photo": image_url, "caption": caption[:1024]}, session)
