from __future__ import annotations

from collections import deque
from typing import Any, Deque, Dict, List, Optional

import pytest

from survey_bot.client import HeadlessView, InMemoryBrowserHistory, SurveyClient
from survey_bot.client.gateway import GatewayError, SubmissionError, SurveyGateway
from survey_bot.config import SurveySettings
from survey_bot.models import ActivityBatch, SurveyMetadata
from survey_bot.session_store import MemorySessionStorage
from survey_bot.utils.scheduler import ManualScheduler


def make_activity(activity_id: str, text: str, from_id: str = "bot") -> Dict[str, Any]:
    return {"id": activity_id, "type": "message", "from": {"id": from_id}, "text": text}


class FakeRedis:
    """The slice of redis.Redis the app and session storage use."""

    def __init__(self) -> None:
        self.data: Dict[str, Any] = {}
        self.expiries: Dict[str, int] = {}
        self.fail_ping = False

    def ping(self) -> bool:
        if self.fail_ping:
            from redis.exceptions import ConnectionError
            raise ConnectionError("redis down")
        return True

    def incr(self, key: str) -> int:
        self.data[key] = int(self.data.get(key, 0)) + 1
        return self.data[key]

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def set(self, key: str, value: str) -> bool:
        self.data[key] = value
        return True

    def delete(self, *keys: str) -> int:
        return sum(1 for k in keys if self.data.pop(k, None) is not None)

    def hget(self, name: str, field: str) -> Optional[str]:
        return self.data.get(name, {}).get(field)

    def hset(self, name: str, field: str, value: str) -> int:
        bucket = self.data.setdefault(name, {})
        created = field not in bucket
        bucket[field] = value
        return int(created)

    def hdel(self, name: str, *fields: str) -> int:
        bucket = self.data.get(name, {})
        return sum(1 for f in fields if bucket.pop(f, None) is not None)

    def hkeys(self, name: str) -> List[str]:
        return list(self.data.get(name, {}).keys())

    def expire(self, name: str, seconds: Any) -> bool:
        self.expiries[name] = int(seconds)
        return True

    def pipeline(self) -> "FakePipeline":
        return FakePipeline(self)


class FakePipeline:
    def __init__(self, client: FakeRedis) -> None:
        self.client = client
        self.ops: List[Any] = []

    def __enter__(self) -> "FakePipeline":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.ops.clear()

    def hset(self, *args: Any) -> "FakePipeline":
        self.ops.append(("hset", args))
        return self

    def expire(self, *args: Any) -> "FakePipeline":
        self.ops.append(("expire", args))
        return self

    def execute(self) -> List[Any]:
        results = [getattr(self.client, name)(*args) for name, args in self.ops]
        self.ops.clear()
        return results


class FakeGateway(SurveyGateway):
    """Scripted backend. Activity payloads are served in order; afterwards an empty batch."""

    def __init__(self) -> None:
        self.metadata = SurveyMetadata(participant_id="P-TEST", treatment_group="control")
        self.conversation_id = "conv-1"
        self.activity_payloads: Deque[Dict[str, Any]] = deque(
            [{"activities": [make_activity("w1", "Welcome! How can I help?")], "watermark": "1"}]
        )
        self.send_ids: Deque[str] = deque()
        self.sent: List[str] = []
        self.submitted: List[Dict[str, Any]] = []
        self.calls: List[str] = []
        self.fail_submit_status: Optional[int] = None
        self.fail_conversation = False

    async def fetch_metadata(self) -> SurveyMetadata:
        self.calls.append("fetch_metadata")
        return self.metadata

    async def submit(self, payload: Dict[str, Any]) -> None:
        self.calls.append("submit")
        if self.fail_submit_status is not None:
            raise SubmissionError("/submit", "rejected", status=self.fail_submit_status or None)
        self.submitted.append(dict(payload))

    async def start_conversation(self, treatment_group: str) -> str:
        self.calls.append("start_conversation")
        if self.fail_conversation:
            raise GatewayError("/startconversation", "down")
        return self.conversation_id

    async def get_activities(self, conversation_id, watermark, treatment_group) -> ActivityBatch:
        self.calls.append(f"get_activities:{watermark}")
        if self.fail_conversation:
            raise GatewayError("/getactivities", "down")
        payload = self.activity_payloads.popleft() if self.activity_payloads else {"activities": [], "watermark": watermark}
        return ActivityBatch.from_payload(payload)

    async def send_message(self, conversation_id, text, treatment_group) -> str:
        self.calls.append("send_message")
        if self.fail_conversation:
            raise GatewayError("/sendmessage", "down")
        self.sent.append(text)
        return self.send_ids.popleft() if self.send_ids else f"u{len(self.sent)}"


@pytest.fixture
def settings() -> SurveySettings:
    return SurveySettings()


@pytest.fixture
def storage() -> MemorySessionStorage:
    return MemorySessionStorage()


@pytest.fixture
def view() -> HeadlessView:
    return HeadlessView()


@pytest.fixture
def history() -> InMemoryBrowserHistory:
    return InMemoryBrowserHistory()


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def make_client(gateway, storage, scheduler, settings):
    """Build a SurveyClient over the shared storage; calling it again is a page reload."""

    def _make(view: Optional[HeadlessView] = None, history: Optional[InMemoryBrowserHistory] = None) -> SurveyClient:
        return SurveyClient(
            gateway,
            storage,
            view or HeadlessView(),
            history or InMemoryBrowserHistory(),
            scheduler,
            settings,
        )

    return _make


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def message():
    """Factory for message activities as the feed returns them."""
    return make_activity
