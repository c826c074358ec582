from __future__ import annotations

import asyncio
import contextlib

import pytest

from survey_bot.client import ConversationEngine, HeadlessView
from survey_bot.client.gateway import GatewayError
from survey_bot.enums import MessageAuthor, SessionKey
from survey_bot.models import ConversationState


@pytest.fixture
def engine(gateway, storage, view, scheduler, settings) -> ConversationEngine:
    storage.set(SessionKey.TREATMENT_GROUP, "control")
    storage.set(SessionKey.CHATBOT_ALREADY_OPENED, "false")
    return ConversationEngine(gateway, storage, view, scheduler, settings)


def stored(storage) -> ConversationState:
    return ConversationState.from_dict(storage.get_json(SessionKey.CONVERSATION))


@pytest.mark.asyncio
async def test_welcome_is_held_until_chat_opens(engine, storage, view, scheduler):
    await engine.initialize()
    assert engine.conversation_id == "conv-1"
    assert engine.held_batches == 1
    assert view.messages == []
    assert stored(storage).conversation_id == "conv-1"

    storage.set(SessionKey.CHATBOT_ALREADY_OPENED, "true")
    engine.user_arrived_at_chat()
    scheduler.advance(250)
    assert view.typing_visible
    scheduler.advance(550)
    assert view.transcript == ["Welcome! How can I help?"]
    assert not view.typing_visible
    assert stored(storage).watermark == "1"


@pytest.mark.asyncio
async def test_batches_are_processed_directly_once_chat_was_opened(engine, storage, view):
    storage.set(SessionKey.CHATBOT_ALREADY_OPENED, "true")
    await engine.initialize()
    assert engine.held_batches == 0
    assert view.transcript == ["Welcome! How can I help?"]


@pytest.mark.asyncio
async def test_send_renders_optimistically_then_links(engine, storage, view, gateway, message):
    storage.set(SessionKey.CHATBOT_ALREADY_OPENED, "true")
    await engine.initialize()

    gateway.send_ids.append("a1")
    gateway.activity_payloads.append(
        {"activities": [message("a1", "Hello", from_id="user1"), message("b1", "Hi!")], "watermark": "3"}
    )
    activity_id = await engine.send("  Hello  ")

    assert activity_id == "a1"
    state = stored(storage)
    assert [(m.text, m.author, m.activity_id) for m in state.messages] == [
        ("Welcome! How can I help?", MessageAuthor.BOT, "w1"),
        ("Hello", MessageAuthor.USER, "a1"),
        ("Hi!", MessageAuthor.BOT, "b1"),
    ]
    assert view.transcript == ["Welcome! How can I help?", "Hello", "Hi!"]
    # send is awaited before the follow-up poll
    assert gateway.calls[-2:] == ["send_message", "get_activities:1"]


@pytest.mark.asyncio
async def test_empty_message_is_ignored(engine, storage, gateway):
    storage.set(SessionKey.CHATBOT_ALREADY_OPENED, "true")
    await engine.initialize()
    assert await engine.send("   ") is None
    assert "send_message" not in gateway.calls


@pytest.mark.asyncio
async def test_continue_gate_opens_after_two_user_messages_and_stays_open(engine, storage, view):
    storage.set(SessionKey.CHATBOT_ALREADY_OPENED, "true")
    await engine.initialize()

    await engine.send("one")
    assert not view.continue_enabled
    await engine.send("two")
    assert view.continue_enabled
    assert storage.get(SessionKey.CONTINUE_BTN_ENABLED) == "true"

    engine.store.save(ConversationState(conversation_id="conv-1"))
    assert engine.refresh_continue_gate()


@pytest.mark.asyncio
async def test_restore_rerenders_transcript_without_new_conversation(engine, storage, gateway, scheduler, settings):
    storage.set(SessionKey.CHATBOT_ALREADY_OPENED, "true")
    await engine.initialize()

    reloaded_view = HeadlessView()
    reloaded = ConversationEngine(gateway, storage, reloaded_view, scheduler, settings)
    await reloaded.initialize()

    assert gateway.calls.count("start_conversation") == 1
    assert reloaded.conversation_id == "conv-1"
    assert reloaded.watermark == "1"
    assert reloaded_view.transcript == ["Welcome! How can I help?"]


@pytest.mark.asyncio
async def test_result_after_close_is_dropped(engine, storage, gateway):
    storage.set(SessionKey.CHATBOT_ALREADY_OPENED, "true")
    engine.conversation_id = "conv-1"

    original = gateway.get_activities

    async def slow_get_activities(*args):
        engine.close()
        return await original(*args)

    gateway.get_activities = slow_get_activities
    assert await engine.poll() == []
    assert not engine.store.exists()


@pytest.mark.asyncio
async def test_conversation_errors_propagate(engine, gateway):
    gateway.fail_conversation = True
    with pytest.raises(GatewayError):
        await engine.initialize()


@pytest.mark.asyncio
async def test_background_polling_survives_errors(engine, storage, gateway, settings):
    storage.set(SessionKey.CHATBOT_ALREADY_OPENED, "true")
    settings.poll_interval_seconds = 0.01
    await engine.initialize()

    gateway.fail_conversation = True
    task = engine.start_polling()
    await asyncio.sleep(0.05)
    assert not task.done()

    engine.close()
    with contextlib.suppress(asyncio.CancelledError):
        await task
    assert task.done()


@pytest.mark.asyncio
async def test_poll_during_send_does_not_render_the_echo_twice(engine, storage, view, gateway, message):
    storage.set(SessionKey.CHATBOT_ALREADY_OPENED, "true")
    await engine.initialize()

    release = asyncio.Event()
    original = gateway.send_message

    async def blocked_send_message(*args):
        await release.wait()
        return await original(*args)

    gateway.send_message = blocked_send_message
    gateway.send_ids.append("a1")
    gateway.activity_payloads.append({"activities": [message("a1", "Hello", from_id="user1")], "watermark": "2"})

    sending = asyncio.ensure_future(engine.send("Hello"))
    await asyncio.sleep(0)
    assert engine.sending
    assert await engine.poll() == []
    assert len(gateway.activity_payloads) == 1

    release.set()
    assert await sending == "a1"
    assert not engine.sending

    state = stored(storage)
    assert [(m.text, m.activity_id) for m in state.messages] == [
        ("Welcome! How can I help?", "w1"),
        ("Hello", "a1"),
    ]
    assert view.transcript == ["Welcome! How can I help?", "Hello"]
    assert state.watermark == "2"


@pytest.mark.asyncio
async def test_poll_result_landing_during_send_is_dropped(engine, storage, view, gateway, message):
    storage.set(SessionKey.CHATBOT_ALREADY_OPENED, "true")
    await engine.initialize()

    fetch_gate = asyncio.Event()
    send_gate = asyncio.Event()
    original_get = gateway.get_activities
    original_send = gateway.send_message
    fetches = []

    async def gated_get_activities(*args):
        fetches.append(args)
        if len(fetches) == 1:
            await fetch_gate.wait()
        return await original_get(*args)

    async def gated_send_message(*args):
        await send_gate.wait()
        return await original_send(*args)

    gateway.get_activities = gated_get_activities
    gateway.send_message = gated_send_message
    gateway.send_ids.append("a1")
    # the feed answers the same watermark with the same activities
    echo = {"activities": [message("a1", "Hello", from_id="user1")], "watermark": "2"}
    gateway.activity_payloads.extend([echo, echo])

    polling = asyncio.ensure_future(engine.poll())
    await asyncio.sleep(0)
    sending = asyncio.ensure_future(engine.send("Hello"))
    await asyncio.sleep(0)

    fetch_gate.set()
    assert await polling == []
    assert engine.watermark == "1"
    assert view.transcript == ["Welcome! How can I help?", "Hello"]

    send_gate.set()
    assert await sending == "a1"
    assert view.transcript == ["Welcome! How can I help?", "Hello"]
    assert [m.text for m in stored(storage).messages] == ["Welcome! How can I help?", "Hello"]
    assert [args[1] for args in fetches] == ["1", "1"]
    assert engine.watermark == "2"
