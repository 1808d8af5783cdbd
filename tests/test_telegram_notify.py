from unittest.mock import MagicMock

import pytest
import requests

from conftest import FakeSession, make_response
from errors import DeliveryFailed
from settings import Config
from telegram_notify import send_photo, send_text

CFG = Config(bot_token="123:abc", chat_id="760905049")


def test_no_destination_is_noop():
    session = MagicMock()
    assert send_text(Config(bot_token="123:abc"), "hi", session=session) is None
    assert send_photo(Config(chat_id="1"), "https://img", "cap", session=session) is None
    session.post.assert_not_called()


def test_send_text():
    session = FakeSession(post_routes={"sendMessage": make_response({"ok": True, "result": {"message_id": 11}})})
    assert send_text(CFG, "hello", session=session) == 11
    url, kwargs = session.calls[0]
    assert url == "https://api.telegram.org/bot123:abc/sendMessage"
    assert kwargs["json"] == {"chat_id": "760905049", "text": "hello"}


def test_send_photo_truncates_caption():
    session = FakeSession(post_routes={"sendPhoto": make_response({"result": {"message_id": 12}})})
    assert send_photo(CFG, "https://quickchart.io/chart?c=x", "x" * 2000, session=session) == 12
    payload = session.calls[0][1]["json"]
    assert payload["photo"] == "https://quickchart.io/chart?c=x"
    assert len(payload["caption"]) == 1024


def test_rejected_message_raises():
    session = FakeSession(post_routes={"sendMessage": make_response({"ok": False}, status=400, text="Bad Request")})
    with pytest.raises(DeliveryFailed, match="400"):
        send_text(CFG, "hello", session=session)


def test_transport_error_raises():
    session = MagicMock()
    session.post.side_effect = requests.Timeout("slow")
    with pytest.raises(DeliveryFailed):
        send_text(CFG, "hello", session=session)
