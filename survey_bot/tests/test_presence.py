from __future__ import annotations

import pytest

from survey_bot.client import HeadlessView, TypingIndicator
from survey_bot.utils.scheduler import ManualScheduler


@pytest.fixture
def typing(scheduler: ManualScheduler, view: HeadlessView) -> TypingIndicator:
    return TypingIndicator(scheduler, view)


def test_indicator_appears_after_delay(typing, scheduler, view):
    typing.show(500)
    scheduler.advance(499)
    assert not view.typing_visible
    scheduler.advance(1)
    assert view.typing_visible and typing.visible


def test_hide_before_firing_cancels(typing, scheduler, view):
    typing.show(500)
    typing.hide()
    scheduler.advance(1000)
    assert not view.typing_visible
    assert scheduler.pending_timers == 0


def test_show_supersedes_pending_show(typing, scheduler, view):
    typing.show(500)
    scheduler.advance(300)
    typing.show(500)
    scheduler.advance(300)
    assert not view.typing_visible
    scheduler.advance(200)
    assert view.typing_visible


def test_hide_removes_visible_indicator(typing, scheduler, view):
    typing.show(0)
    scheduler.advance(0)
    typing.hide()
    assert not view.typing_visible and not typing.visible
