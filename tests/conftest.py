from unittest.mock import MagicMock

import pytest

from models import CoinStats, GlobalMetrics, GlobalVolume, IndexSnapshot, MarketSnapshot


def make_response(payload=None, status=200, text=""):
    resp = MagicMock()
    resp.ok = 200 <= status < 300
    resp.status_code = status
    resp.json.return_value = payload
    resp.text = text
    return resp


class FakeSession:
    """Routes get/post by URL substring; a route may be a response or a fn(url, kwargs) -> response."""

    def __init__(self, get_routes=None, post_routes=None):
        self.get_routes = get_routes or {}
        self.post_routes = post_routes or {}
        self.calls = []

    def _route(self, routes, url, kwargs):
        self.calls.append((url, kwargs))
        for key, resp in routes.items():
            if key in url:
                return resp(url, kwargs) if callable(resp) and not isinstance(resp, MagicMock) else resp
        raise AssertionError(f"unexpected request to {url}")

    def get(self, url, **kwargs):
        return self._route(self.get_routes, url, kwargs)

    def post(self, url, **kwargs):
        return self._route(self.post_routes, url, kwargs)


HISTORY_ENTRIES = [
    {"timestamp": "1704067200", "value": "40"},     # 2024-01-01
    {"timestamp": "1704153600", "value": "55"},     # 2024-01-02
]

GLOBAL_METRICS_PAYLOAD = {
    "data": {
        "btc_dominance": 52.4,
        "eth_dominance": 17.1,
        "quote": {
            "USD": {
                "total_volume_24h": 100e9,
                "total_market_cap": 2.4e12,
                "total_market_cap_yesterday": 2.37e12,
                "total_volume_24h_yesterday": 95e9,
                "total_market_cap_yesterday_percentage_change": 1.234,
                "total_volume_24h_yesterday_percentage_change": -5.678,
            }
        },
    }
}

LISTINGS_PAYLOAD = {
    "data": [
        {"symbol": "BTC", "quote": {"USD": {
            "price": 65000.0, "volume_24h": 30e9, "percent_change_1h": 0.53,
            "percent_change_24h": -1.2, "market_cap": 1.3e12, "market_cap_dominance": 52.4}}},
        {"symbol": "ETH", "quote": {"USD": {
            "price": 3400.0, "volume_24h": 15e9, "percent_change_1h": -0.1,
            "percent_change_24h": 2.5, "market_cap": 4.1e11}}},
    ]
}


def okx_price_route(url, kwargs):
    prices = {"BTC-USDT": "65000.5", "ETH-USDT": "3400.25"}
    return make_response({"data": {"last": prices[kwargs["params"]["index"]]}})


def market_routes():
    return {
        "fear-and-greed/latest": make_response({"data": {"value": "61"}}),
        "fear-and-greed/historical": make_response({"data": HISTORY_ENTRIES}),
        "global-metrics": make_response(GLOBAL_METRICS_PAYLOAD),
        "listings/latest": make_response(LISTINGS_PAYLOAD),
        "index-components": okx_price_route,
        "funding-rate": make_response({"data": [{"fundingRate": "0.0001"}]}),
        "alternative.me": make_response({"data": list(reversed(HISTORY_ENTRIES))}),
    }


@pytest.fixture
def btc_stats():
    return CoinStats(price=65000.0, volume_24h=30e9, percent_change_1h=0.53,
                     percent_change_24h=-1.2, market_cap=1.3e12, dominance=52.4)


@pytest.fixture
def snapshot(btc_stats):
    volume = GlobalVolume(total_volume_24h=100e9, total_market_cap=2.4e12, total_market_cap_yesterday=2.37e12,
                          total_volume_24h_yesterday=95e9, market_cap_change_pct=1.234, volume_change_pct=-5.678)
    return MarketSnapshot(
        index=IndexSnapshot(today_value=61.0, yesterday_value=55.0),
        metrics=GlobalMetrics(btc_dominance=52.4, eth_dominance=17.1, volume=volume),
        funding_rate=0.01,
        btc_price=65000.5,
        eth_price=3400.25,
        coins={"BTC": btc_stats},
    )
