from __future__ import annotations

from typing import Any, Dict, List, Optional

import pytest

from survey_bot import create_app
from survey_bot.database import SurveyResponse
from survey_bot.directline import DirectLineError


class FakeDirectLine:
    def __init__(self) -> None:
        self.groups: List[Optional[str]] = []
        self.fail: Optional[DirectLineError] = None
        self.sent: List[Dict[str, Any]] = []

    def for_group(self, treatment_group):
        self.groups.append(treatment_group)
        return self

    def start_conversation(self) -> str:
        if self.fail:
            raise self.fail
        return "conv-9"

    def get_activities(self, conversation_id, watermark=None):
        if self.fail:
            raise self.fail
        return {"activities": [{"id": "x1", "type": "message", "text": "hi"}], "watermark": "4"}

    def send_message(self, conversation_id, text):
        if self.fail:
            raise self.fail
        self.sent.append({"conversationId": conversation_id, "text": text})
        return "x2"


@pytest.fixture
def directline() -> FakeDirectLine:
    return FakeDirectLine()


@pytest.fixture
def app(fake_redis, directline):
    app = create_app("testing", redis_client=fake_redis, directline=directline)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def http(app):
    return app.test_client()


def test_groups_are_assigned_round_robin(http):
    groups = [http.get("/generateSurveyData").get_json()["treatmentGroup"] for _ in range(4)]
    assert groups == ["control", "treatment", "control", "treatment"]


def test_participant_ids_are_unique(http):
    first = http.get("/generateSurveyData").get_json()["participantId"]
    second = http.get("/generateSurveyData").get_json()["participantId"]
    assert first != second and len(first) == 12


def test_submit_requires_participant(http):
    resp = http.post("/submit", json={"treatmentGroup": "control"})
    assert resp.status_code == 400


def test_submit_stores_the_response(app, http):
    payload = {
        "participantId": "P1",
        "treatmentGroup": "treatment",
        "conversationLog": '{"conversationId": "c1"}',
        "gender": "female",
        "satisfaction": "5",
        "unexpected": "dropped",
    }
    resp = http.post("/submit", json=payload)
    assert resp.status_code == 200
    row_id = resp.get_json()["id"]

    db = app.extensions["db_session_factory"]()
    try:
        row = db.get(SurveyResponse, row_id)
        assert row.participant_id == "P1"
        assert row.conversation_log == '{"conversationId": "c1"}'
        assert row.answers == {"gender": "female", "experience": "", "satisfaction": "5"}
    finally:
        db.close()


def test_start_conversation_uses_the_group_secret(http, directline):
    resp = http.post("/startconversation", json={"treatmentGroup": "treatment"})
    assert resp.status_code == 200
    assert resp.get_json() == {"conversationId": "conv-9"}
    assert directline.groups == ["treatment"]


def test_activities_are_forwarded_untouched(http):
    resp = http.post("/getactivities", json={"conversationId": "conv-9", "watermark": "3"})
    assert resp.get_json() == {"activities": [{"id": "x1", "type": "message", "text": "hi"}], "watermark": "4"}


@pytest.mark.parametrize(
    "path,body",
    [
        ("/getactivities", {}),
        ("/sendmessage", {"conversationId": "conv-9"}),
        ("/sendmessage", {"text": "hello"}),
    ],
)
def test_missing_fields_are_rejected(http, path, body):
    resp = http.post(path, json=body)
    assert resp.status_code == 400
    assert resp.get_json()["error"].startswith("missing required fields")


def test_send_message_returns_the_activity_id(http, directline):
    resp = http.post("/sendmessage", json={"conversationId": "conv-9", "text": "Hello", "treatmentGroup": "control"})
    assert resp.get_json() == {"id": "x2"}
    assert directline.sent == [{"conversationId": "conv-9", "text": "Hello"}]


def test_vendor_failure_maps_to_bad_gateway(http, directline):
    directline.fail = DirectLineError("start_conversation", "HTTP 403", status=403)
    assert http.post("/startconversation", json={}).status_code == 502


def test_health(http, fake_redis):
    assert http.get("/health").status_code == 200
    fake_redis.fail_ping = True
    resp = http.get("/health")
    assert resp.status_code == 500
    assert resp.get_json()["redis"] == "disconnected"


def test_unknown_route_answers_json(http):
    resp = http.get("/nope")
    assert resp.status_code == 404
    assert resp.get_json()["error"] == "Endpoint not found"
