"""Typing indicator driven by one cancellable scheduled task."""
from __future__ import annotations

from typing import Optional

from ..utils.scheduler import ScheduledTask, Scheduler
from .view import SurveyView


class TypingIndicator:
    def __init__(self, scheduler: Scheduler, view: SurveyView) -> None:
        self.scheduler = scheduler
        self.view = view
        self._pending: Optional[ScheduledTask] = None
        self.visible = False

    @property
    def pending(self) -> bool:
        return self._pending is not None and self._pending.pending

    def show(self, delay_ms: float) -> None:
        self._cancel_pending()
        task: Optional[ScheduledTask] = None

        def insert() -> None:
            # hide() may have run between scheduling and firing
            if task is None or task.cancelled or self._pending is not task:
                return
            self._pending = None
            self.view.hide_typing()
            self.view.show_typing()
            self.visible = True

        task = self.scheduler.call_later(delay_ms, insert)
        self._pending = task

    def hide(self) -> None:
        self._cancel_pending()
        if self.visible:
            self.view.hide_typing()
            self.visible = False

    def _cancel_pending(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None
