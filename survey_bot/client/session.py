"""
Participant session
═══════════════════
One participant's run through the survey. SurveyClient owns every piece of navigation
and conversation state (router, history shadow, scroll offsets, form snapshot,
conversation engine); nothing lives in module globals, so several participants can run
side by side in one process.

Everything that must survive a reload is written to the session storage on each change
and read back in ``load()``. Building a new SurveyClient over the same storage is a page
reload.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from ..config import SurveySettings
from ..enums import PopOutcome, SessionKey
from ..models import FormSnapshot, NavigationState, PopEvent, SurveyMetadata
from ..session_store import SessionStorage
from ..utils.scheduler import Scheduler
from ..utils.smart_logger import get_smart_logger
from .conversation import ConversationEngine
from .gateway import SubmissionError, SurveyGateway
from .history import BrowserHistory, HistorySynchronizer
from .router import SurveyRouter
from .scroll import ScrollRestorer, ViewportGeometry
from .view import SurveyView

log = logging.getLogger(__name__)
smart_log = get_smart_logger("navigation")

SUBMIT_FAILED_ALERT = "Network error. Please check your connection and try again."


class SurveyClient:
    def __init__(
        self,
        gateway: SurveyGateway,
        storage: SessionStorage,
        view: SurveyView,
        history: BrowserHistory,
        scheduler: Scheduler,
        settings: Optional[SurveySettings] = None,
    ) -> None:
        self.settings = settings or SurveySettings()
        self.gateway = gateway
        self.storage = storage
        self.view = view
        self.scheduler = scheduler

        self.router = SurveyRouter(self.settings)
        self.history = HistorySynchronizer(history)
        self.scroll = ScrollRestorer(scheduler, view, storage)
        self.conversation = ConversationEngine(gateway, storage, view, scheduler, self.settings)

        self.form = FormSnapshot(answers={q: "" for q in self.settings.likert_questions})
        self.metadata: Optional[SurveyMetadata] = None
        self.submitted = False
        self.pop_outcomes: List[PopOutcome] = []

    # ------------------------------------------------------------------
    # state accessors
    # ------------------------------------------------------------------
    @property
    def who(self) -> str:
        return self.metadata.participant_id if self.metadata else "anonymous"

    @property
    def current_page(self) -> int:
        return self.router.current_page

    @property
    def chat_open(self) -> bool:
        return self.router.on_chat_page and self.storage.get(SessionKey.OPEN_CHATBOT) == "1"

    @property
    def navigation_state(self) -> NavigationState:
        return NavigationState(
            current_page=self.router.current_page,
            history_entries=[dict(e) for e in self.history.entries],
            scroll_positions=dict(self.scroll.positions),
            chat_open=self.chat_open,
        )

    def _set_chat_flag(self, open_: bool) -> None:
        self.storage.set(SessionKey.OPEN_CHATBOT, "1" if open_ else "0")

    def save_navigation(self) -> None:
        self.storage.set(SessionKey.CURRENT_PAGE, str(self.router.current_page))
        self.storage.set_json(SessionKey.HISTORY_STATES, self.history.entries)

    # ------------------------------------------------------------------
    # page load
    # ------------------------------------------------------------------
    async def load(self) -> None:
        already_opened = self.storage.get(SessionKey.CHATBOT_ALREADY_OPENED) == "true"
        self.storage.set(SessionKey.CHATBOT_ALREADY_OPENED, "true" if already_opened else "false")

        self.metadata = await self.ensure_metadata()
        self.restore_state()
        self.history.initialize(self.router.current_page)
        self.save_navigation()

        self.show_page()
        self.history.attach(self.on_pop)
        log.info(f"SURVEY_LOADED | who={self.who} | group={self.metadata.treatment_group} | page={self.current_page}")
        smart_log.debug_state(self.who, "navigation", self.navigation_state.to_dict())

        await self.conversation.initialize()

    async def ensure_metadata(self) -> SurveyMetadata:
        participant_id = self.storage.get(SessionKey.PARTICIPANT_ID)
        treatment_group = self.storage.get(SessionKey.TREATMENT_GROUP)
        if not participant_id or not treatment_group:
            fetched = await self.gateway.fetch_metadata()
            participant_id = participant_id or fetched.participant_id
            treatment_group = treatment_group or fetched.treatment_group
            log.info(f"METADATA_FETCHED | who={participant_id} | group={treatment_group}")
        self.storage.set(SessionKey.PARTICIPANT_ID, participant_id)
        self.storage.set(SessionKey.TREATMENT_GROUP, treatment_group)
        return SurveyMetadata(participant_id=participant_id, treatment_group=treatment_group)

    def restore_state(self) -> None:
        saved_page = self.storage.get(SessionKey.CURRENT_PAGE)
        if saved_page:
            try:
                self.router.restore(int(saved_page))
            except ValueError:
                log.warning(f"CURRENT_PAGE_INVALID | value={saved_page}")

        entries = self.storage.get_json(SessionKey.HISTORY_STATES, [])
        if isinstance(entries, list):
            self.history.entries = [
                {"page": int(e["page"])} for e in entries if isinstance(e, dict) and "page" in e
            ]

        self.view.set_start_enabled(False)
        data = self.storage.get_json(SessionKey.FORM_DATA)
        if isinstance(data, dict):
            self.form = FormSnapshot.from_dict(data, self.settings.likert_questions)
            if self.form.consent:
                self.view.set_consent(True)
                self.view.set_start_enabled(True)
            for question, value in self.form.answers.items():
                if value:
                    self.view.set_answer(question, value)

    # ------------------------------------------------------------------
    # rendering
    # ------------------------------------------------------------------
    def show_page(self) -> None:
        self.scroll.cancel_pending()
        element_id = self.router.page_element_id
        self.view.show_page(element_id)

        if self.router.on_chat_page and self.storage.get(SessionKey.OPEN_CHATBOT) is None:
            self._set_chat_flag(False)
        self.apply_chat_view()

        self.view.set_progress(self.router.progress)
        self.scroll.restore(self.router.current_page, element_id)

    def apply_chat_view(self) -> None:
        open_ = self.chat_open
        self.view.set_chat_visible(open_)
        if open_:
            self.scroll.align_chat()

    # ------------------------------------------------------------------
    # form inputs
    # ------------------------------------------------------------------
    def set_consent(self, checked: bool) -> None:
        self.view.set_consent(checked)
        self.view.set_start_enabled(checked)
        self.save_form()

    def select_answer(self, question: str, value: str) -> None:
        if question not in self.settings.likert_questions:
            raise ValueError(f"unknown question {question!r}")
        self.view.set_answer(question, value)
        self.save_form()

    def save_form(self) -> None:
        self.form = FormSnapshot(
            consent=self.view.consent_checked(),
            answers={q: self.view.answer(q) for q in self.settings.likert_questions},
        )
        self.storage.set_json(SessionKey.FORM_DATA, self.form.to_dict())

    # ------------------------------------------------------------------
    # navigation
    # ------------------------------------------------------------------
    def _move(self, forward: bool, cause: str) -> bool:
        """Step the logical page by one, capture and restore scroll, persist."""
        from_page = self.router.current_page
        overlay_open = self.chat_open
        if not (self.router.can_advance() if forward else self.router.can_retreat()):
            return False

        self.scroll.capture(from_page, chat_overlay_open=overlay_open)
        if forward:
            self.router.advance()
        else:
            self.router.retreat()
        if from_page == self.settings.chatbot_page:
            self._set_chat_flag(False)

        self.show_page()
        self.save_navigation()
        smart_log.page_transition(self.who, from_page, self.router.current_page, cause)
        return True

    def next(self) -> bool:
        if self.router.current_page == 1 and not self.view.is_start_enabled():
            log.info(f"ADVANCE_BLOCKED | who={self.who} | reason=consent")
            return False
        if not self._move(forward=True, cause="next"):
            return False
        self.history.forward_to(self.router.current_page)
        self.save_navigation()
        return True

    def back(self) -> bool:
        """Go to the previous page. With the chat open this only closes the chat (returns False)."""
        if self.chat_open:
            self.close_chat()
            return False
        if not self._move(forward=False, cause="back"):
            return False
        self.history.back(self.router.current_page)
        return True

    def open_chat(self) -> bool:
        if not self.router.on_chat_page:
            return False
        self.scroll.capture(self.router.current_page, chat_overlay_open=self.chat_open)
        if not self.conversation.chat_already_opened:
            self.storage.set(SessionKey.CHATBOT_ALREADY_OPENED, "true")
            self.conversation.user_arrived_at_chat()
        self._set_chat_flag(True)
        self.apply_chat_view()
        smart_log.chat_view(self.who, True)
        return True

    def close_chat(self) -> None:
        self._set_chat_flag(False)
        self.apply_chat_view()
        self.show_page()
        smart_log.chat_view(self.who, False)

    def continue_survey(self) -> bool:
        if not self.router.on_chat_page or not self.conversation.continue_enabled:
            return False
        return self.next()

    async def send_message(self, text: str) -> Optional[str]:
        return await self.conversation.send(text)

    def resize(self, geometry: ViewportGeometry) -> float:
        return self.scroll.update_viewport(geometry, chat_open_on_chat_page=self.chat_open)

    def before_unload(self) -> None:
        self.scroll.capture(self.router.current_page, chat_overlay_open=self.chat_open)

    # ------------------------------------------------------------------
    # native back/forward
    # ------------------------------------------------------------------
    def on_pop(self, event: PopEvent) -> None:
        outcome = self._handle_pop(event)
        self.pop_outcomes.append(outcome)
        smart_log.pop_handled(self.who, event.page, outcome.value)

    def _handle_pop(self, event: PopEvent) -> PopOutcome:
        if self.history.consume_echo(event):
            return PopOutcome.ECHO_CONSUMED

        current = self.router.current_page
        if current == 1 and event.page == 2 and not self.view.consent_checked():
            self.history.back(1)
            return PopOutcome.CONSENT_BLOCKED

        if self.chat_open:
            if event.page == self.settings.chatbot_page - 1:
                # closing the overlay must not cost a history slot
                self.close_chat()
                self.history.replay_forward(self.settings.chatbot_page)
                return PopOutcome.CHAT_CLOSED
            if self._move(forward=True, cause="pop"):
                return PopOutcome.CHAT_ADVANCED
            return PopOutcome.IGNORED

        if self.router.on_terminal:
            self.history.detach_and_back()
            return PopOutcome.TERMINAL_LOCKED

        if event.page < current:
            return PopOutcome.RETREATED if self._move(forward=False, cause="pop") else PopOutcome.IGNORED
        if event.page > current:
            return PopOutcome.ADVANCED if self._move(forward=True, cause="pop") else PopOutcome.IGNORED
        return PopOutcome.IGNORED

    # ------------------------------------------------------------------
    # submission
    # ------------------------------------------------------------------
    def collect_data(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "participantId": self.storage.get(SessionKey.PARTICIPANT_ID),
            "treatmentGroup": self.storage.get(SessionKey.TREATMENT_GROUP),
            "conversationLog": self.conversation.store.raw() or "",
        }
        for question in self.settings.likert_questions:
            data[question] = self.view.answer(question)
        return data

    async def submit(self) -> bool:
        if self.router.current_page != self.router.last_data_page:
            smart_log.warning(self.who, "SUBMIT_NOT_ON_LAST_PAGE", f"page={self.current_page}")
            return False

        payload = self.collect_data()
        try:
            await self.gateway.submit(payload)
        except SubmissionError as e:
            smart_log.submission(self.who, False, str(e))
            self.view.alert(SUBMIT_FAILED_ALERT)
            return False

        smart_log.submission(self.who, True)
        from_page = self.router.current_page
        self.scroll.capture(from_page)
        self.router.enter_thankyou()
        self.show_page()
        self.history.forward_to(self.router.current_page)
        smart_log.page_transition(self.who, from_page, self.router.current_page, "submit")

        self.clear_state()
        self.conversation.close()
        self.submitted = True
        return True

    def clear_state(self) -> None:
        self.storage.clear(list(SessionKey))
        log.info(f"SESSION_CLEARED | who={self.who}")
