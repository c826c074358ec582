from __future__ import annotations

import json
from typing import Any, Dict, List

import pytest
import requests

from survey_bot.config import TestingConfig
from survey_bot.directline import DirectLineClient, DirectLineError, DirectLineRegistry


def response(status: int, body: Any) -> requests.Response:
    resp = requests.Response()
    resp.status_code = status
    resp._content = json.dumps(body).encode()
    return resp


class FakeSession:
    def __init__(self, *responses: requests.Response) -> None:
        self.responses = list(responses)
        self.calls: List[Dict[str, Any]] = []

    def request(self, method, url, **kwargs):
        self.calls.append({"method": method, "url": url, **kwargs})
        if isinstance(self.responses[0], Exception):
            raise self.responses.pop(0)
        return self.responses.pop(0)


def client(*responses) -> DirectLineClient:
    return DirectLineClient("s3cret", base_url="https://dl.test/v3/directline/", session=FakeSession(*responses))


def test_start_conversation_sends_bearer_secret():
    dl = client(response(201, {"conversationId": "abc"}))
    assert dl.start_conversation() == "abc"
    call = dl.http.calls[0]
    assert call["url"] == "https://dl.test/v3/directline/conversations"
    assert call["headers"]["Authorization"] == "Bearer s3cret"


def test_watermark_is_only_sent_when_known():
    dl = client(response(200, {"activities": []}), response(200, {"activities": [], "watermark": "7"}))
    assert dl.get_activities("abc") == {"activities": [], "watermark": None}
    assert dl.get_activities("abc", "6")["watermark"] == "7"
    assert dl.http.calls[0]["params"] is None
    assert dl.http.calls[1]["params"] == {"watermark": "6"}


def test_send_message_posts_a_user_activity():
    dl = client(response(200, {"id": "abc|0001"}))
    assert dl.send_message("abc", "Hello") == "abc|0001"
    assert dl.http.calls[0]["json"] == {"type": "message", "from": {"id": "user1"}, "text": "Hello"}


def test_bad_status_raises_with_status():
    dl = client(response(403, {"error": "forbidden"}))
    with pytest.raises(DirectLineError) as exc:
        dl.start_conversation()
    assert exc.value.status == 403


def test_network_failure_raises():
    dl = client(requests.ConnectionError("refused"))
    with pytest.raises(DirectLineError):
        dl.send_message("abc", "x")


def test_missing_secret_is_refused():
    with pytest.raises(DirectLineError):
        DirectLineClient("")


def test_registry_picks_the_group_secret():
    cfg = TestingConfig()
    cfg.DIRECT_LINE_SECRET = "default"
    cfg.DIRECT_LINE_SECRETS = {"treatment": "t-secret"}
    registry = DirectLineRegistry(cfg)

    assert registry.for_group("treatment")._secret == "t-secret"
    assert registry.for_group("control")._secret == "default"
    assert registry.for_group(None) is registry.for_group("control")
