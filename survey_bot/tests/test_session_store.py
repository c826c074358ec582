from __future__ import annotations

from datetime import timedelta

import pytest

from survey_bot.enums import SessionKey
from survey_bot.session_store import MemorySessionStorage, RedisSessionStorage


@pytest.fixture(params=["memory", "redis"])
def any_storage(request, fake_redis):
    if request.param == "memory":
        return MemorySessionStorage()
    return RedisSessionStorage(fake_redis, "s1", ttl=timedelta(minutes=30))


def test_values_are_strings(any_storage):
    any_storage.set(SessionKey.CURRENT_PAGE, 3)
    assert any_storage.get(SessionKey.CURRENT_PAGE) == "3"
    assert any_storage.get("missing") is None


def test_json_helpers(any_storage):
    any_storage.set_json(SessionKey.FORM_DATA, {"consent": True})
    assert any_storage.get_json(SessionKey.FORM_DATA) == {"consent": True}


def test_corrupt_json_is_removed(any_storage):
    any_storage.set(SessionKey.HISTORY_STATES, "{broken")
    assert any_storage.get_json(SessionKey.HISTORY_STATES, []) == []
    assert any_storage.get(SessionKey.HISTORY_STATES) is None


def test_clear_selected_keys(any_storage):
    any_storage.set(SessionKey.PARTICIPANT_ID, "P1")
    any_storage.set("unrelated", "x")
    any_storage.clear([SessionKey.PARTICIPANT_ID])
    assert any_storage.keys() == ["unrelated"]


def test_redis_writes_refresh_ttl(fake_redis):
    store = RedisSessionStorage(fake_redis, "s1", ttl=timedelta(minutes=30))
    store.set(SessionKey.OPEN_CHATBOT, "1")
    assert fake_redis.data["survey_session:s1"] == {"openChatbot": "1"}
    assert fake_redis.expiries["survey_session:s1"] == 1800


def test_redis_clear_all_drops_the_hash(fake_redis):
    store = RedisSessionStorage(fake_redis, "s1")
    store.set(SessionKey.OPEN_CHATBOT, "1")
    store.clear()
    assert "survey_session:s1" not in fake_redis.data


def test_sessions_are_isolated(fake_redis):
    RedisSessionStorage(fake_redis, "a").set(SessionKey.CURRENT_PAGE, "2")
    assert RedisSessionStorage(fake_redis, "b").get(SessionKey.CURRENT_PAGE) is None
