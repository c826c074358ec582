"""
Conversation engine
───────────────────
Drives one participant's chat with the agent through the backend proxy:

* start or restore the conversation,
* poll the activity feed (after each send and on a fixed interval),
* hold the pre-fetched welcome batch until the participant first opens the chat, then
  replay it with an artificial typing delay,
* render optimistic user messages and link them to the id the send call returns,
* enable the "continue survey" control once the participant has written enough.

There is no cancellation of in-flight calls. A response that arrives after ``close()``
is dropped by checking ``closed`` on completion.
"""
from __future__ import annotations

import asyncio
import logging
from typing import List, Optional

from ..config import SurveySettings
from ..enums import MessageAuthor, SessionKey
from ..models import ActivityBatch, ConversationState, TranscriptMessage, Watermark
from ..session_store import SessionStorage
from ..utils.scheduler import ScheduledTask, Scheduler
from ..utils.smart_logger import get_smart_logger
from .conversation_store import ConversationStateStore
from .gateway import GatewayError, SurveyGateway
from .presence import TypingIndicator
from .reconciler import ActivityReconciler
from .view import SurveyView

log = logging.getLogger(__name__)
smart_log = get_smart_logger("conversation")


class ConversationEngine:
    def __init__(
        self,
        gateway: SurveyGateway,
        storage: SessionStorage,
        view: SurveyView,
        scheduler: Scheduler,
        settings: Optional[SurveySettings] = None,
    ) -> None:
        self.gateway = gateway
        self.storage = storage
        self.view = view
        self.scheduler = scheduler
        self.settings = settings or SurveySettings()

        self.store = ConversationStateStore(storage)
        self.reconciler = ActivityReconciler(self.settings.user_from_id)
        self.typing = TypingIndicator(scheduler, view)

        self.conversation_id: Optional[str] = None
        self.watermark: Watermark = None
        self.closed = False

        self._held: List[ActivityBatch] = []
        self._replay: Optional[ScheduledTask] = None
        self._poll_task: Optional[asyncio.Task] = None
        # sends between the optimistic append and their follow-up poll
        self._sends_in_flight = 0

    # ------------------------------------------------------------------
    # session-scoped flags
    # ------------------------------------------------------------------
    @property
    def participant(self) -> str:
        return self.storage.get(SessionKey.PARTICIPANT_ID) or "anonymous"

    @property
    def treatment_group(self) -> str:
        return self.storage.get(SessionKey.TREATMENT_GROUP) or ""

    @property
    def chat_already_opened(self) -> bool:
        return self.storage.get(SessionKey.CHATBOT_ALREADY_OPENED) == "true"

    @property
    def continue_enabled(self) -> bool:
        return self.storage.get(SessionKey.CONTINUE_BTN_ENABLED) == "true"

    @property
    def held_batches(self) -> int:
        return len(self._held)

    @property
    def sending(self) -> bool:
        return self._sends_in_flight > 0

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------
    async def initialize(self) -> None:
        """Restore the stored conversation, or start a new one."""
        state = self.store.load() if self.store.exists() else None
        if state is not None and state.conversation_id:
            self.restore(state)
            if not self.chat_already_opened:
                # the welcome batch was held in memory only; fetch it again
                await self.poll()
        else:
            await self.start()
        self.refresh_continue_gate()

    def restore(self, state: ConversationState) -> None:
        self.conversation_id = state.conversation_id
        self.watermark = state.watermark
        for message in state.messages:
            self.view.add_message(message.text, message.author)
        log.info(
            f"CONVERSATION_RESTORED | conversation={self.conversation_id} | "
            f"messages={len(state.messages)} | watermark={self.watermark}"
        )

    async def start(self) -> None:
        smart_log.api_call(self.participant, "/startconversation")
        conversation_id = await self.gateway.start_conversation(self.treatment_group)
        if self.closed:
            log.info(f"START_RESULT_DROPPED | conversation={conversation_id} | engine closed")
            return

        self.conversation_id = conversation_id
        state = self.store.load()
        state.conversation_id = conversation_id
        self.store.save(state)
        log.info(f"CONVERSATION_STARTED | conversation={conversation_id} | group={self.treatment_group}")

        await self.poll()

    def close(self) -> None:
        self.closed = True
        self.typing.hide()
        if self._replay is not None:
            self._replay.cancel()
            self._replay = None
        self._held.clear()
        if self._poll_task is not None and not self._poll_task.done():
            self._poll_task.cancel()
        self._poll_task = None

    # ------------------------------------------------------------------
    # activity feed
    # ------------------------------------------------------------------
    async def poll(self) -> List[TranscriptMessage]:
        """
        Fetch and merge activities newer than the watermark.

        Nothing is merged while a send is in flight: an echo of the message arriving before
        its id is linked would be rendered a second time. Such polls are skipped, or dropped
        on completion without moving the watermark, and the send's follow-up poll fetches
        the same activities again.
        """
        if self.closed or not self.conversation_id:
            return []
        if self.sending:
            log.debug(f"POLL_SKIPPED | conversation={self.conversation_id} | send in flight")
            return []
        batch = await self.gateway.get_activities(self.conversation_id, self.watermark, self.treatment_group)
        if self.closed:
            log.info(f"POLL_RESULT_DROPPED | conversation={self.conversation_id} | engine closed")
            return []
        if self.sending:
            log.info(f"POLL_RESULT_DROPPED | conversation={self.conversation_id} | send in flight")
            return []

        if self.chat_already_opened:
            return self.process(batch)
        self._hold(batch)
        return []

    def _hold(self, batch: ActivityBatch) -> None:
        held_ids = {a.id for b in self._held for a in b.activities}
        if any(a.is_message and a.id not in held_ids for a in batch.activities):
            self._held.append(batch)
            log.debug(f"WELCOME_HELD | batches={len(self._held)}")

    def user_arrived_at_chat(self) -> None:
        """First opening of the chat: replay the held welcome batch with the welcome delays."""
        if not self._held or self.closed:
            return
        held, self._held = self._held, []
        self.typing.show(self.settings.initial_typing_delay_ms)

        def replay() -> None:
            self._replay = None
            if self.closed:
                return
            for batch in held:
                self.process(batch)

        self._replay = self.scheduler.call_later(self.settings.initial_bot_message_delay_ms, replay)

    def process(self, batch: ActivityBatch) -> List[TranscriptMessage]:
        self.typing.hide()

        result = self.reconciler.reconcile(self.store.load(), batch)
        state = result.state
        if state.conversation_id is None:
            state.conversation_id = self.conversation_id
        self.watermark = state.watermark

        for message in result.new_messages:
            self.view.add_message(message.text, message.author)
        self.store.save(state)

        smart_log.activities_merged(self.participant, len(batch.activities), len(result.new_messages), self.watermark)
        self.refresh_continue_gate()
        return result.new_messages

    # ------------------------------------------------------------------
    # participant messages
    # ------------------------------------------------------------------
    async def send(self, text: str) -> Optional[str]:
        text = (text or "").strip()
        if not text:
            return None
        if not self.conversation_id:
            raise GatewayError("/sendmessage", "no active conversation")

        self._sends_in_flight += 1
        try:
            self.view.add_message(text, MessageAuthor.USER)
            self.store.save(self.reconciler.append_local(self.store.load(), text))
            self.typing.show(self.settings.typing_delay_ms)
            self.refresh_continue_gate()

            smart_log.api_call(self.participant, "/sendmessage")
            activity_id = await self.gateway.send_message(self.conversation_id, text, self.treatment_group)

            link = self.reconciler.link_sent_message(self.store.load(), activity_id)
            if link.linked:
                self.store.save(link.state)
            smart_log.message_linked(self.participant, activity_id, link.linked)
        finally:
            self._sends_in_flight -= 1

        # with another send still in flight this is skipped; that send polls when it is linked
        await self.poll()
        return activity_id

    # ------------------------------------------------------------------
    # continue gate
    # ------------------------------------------------------------------
    def refresh_continue_gate(self) -> bool:
        if self.continue_enabled:
            self.view.set_continue_enabled(True)
            return True
        if self.store.load().user_message_count() >= self.settings.continue_min_user_messages:
            self.view.set_continue_enabled(True)
            self.storage.set(SessionKey.CONTINUE_BTN_ENABLED, "true")
            log.info(f"CONTINUE_ENABLED | who={self.participant}")
            return True
        self.view.set_continue_enabled(False)
        return False

    # ------------------------------------------------------------------
    # interval polling
    # ------------------------------------------------------------------
    def start_polling(self) -> asyncio.Task:
        if self._poll_task is None or self._poll_task.done():
            self._poll_task = asyncio.get_running_loop().create_task(self._poll_forever())
        return self._poll_task

    async def _poll_forever(self) -> None:
        interval = self.settings.poll_interval_seconds
        while not self.closed:
            await asyncio.sleep(interval)
            if self.closed:
                break
            try:
                await self.poll()
            except GatewayError as e:
                smart_log.error_occurred(self.participant, type(e).__name__, "poll", str(e))
