from __future__ import annotations

import pytest

from survey_bot.client.history import HistorySynchronizer, InMemoryBrowserHistory
from survey_bot.enums import HistoryOp, TransitionOrigin
from survey_bot.models import PopEvent


@pytest.fixture
def sync(history) -> HistorySynchronizer:
    s = HistorySynchronizer(history)
    s.initialize(1)
    return s


def test_first_visit_pushes_and_revisit_moves_forward(sync, history):
    sync.forward_to(2)
    assert history.length == 2 and history.state == {"page": 2}

    sync.back(1)
    history.flush()
    sync.consume_echo(PopEvent(page=1))

    sync.forward_to(2)
    assert history.length == 2
    assert history.index == 1
    assert [t.op for t in sync.transitions] == [
        HistoryOp.REPLACE,
        HistoryOp.PUSH,
        HistoryOp.BACK,
        HistoryOp.POP,
        HistoryOp.FORWARD,
    ]


def test_echo_is_consumed_once(sync):
    sync.forward_to(2)
    sync.back(1)
    assert sync.consume_echo(PopEvent(page=1))
    assert not sync.consume_echo(PopEvent(page=1))
    origins = [t.origin for t in sync.transitions if t.op is HistoryOp.POP]
    assert origins == [TransitionOrigin.SELF_INITIATED, TransitionOrigin.EXTERNAL]


def test_pops_are_delivered_on_flush(sync, history):
    seen = []
    sync.attach(seen.append)
    sync.forward_to(2)
    history.back()
    assert seen == []
    assert history.flush() == 1
    assert seen == [PopEvent(page=1)]


def test_detach_stops_delivery(sync, history):
    seen = []
    sync.attach(seen.append)
    sync.forward_to(2)
    sync.detach_and_back()
    history.flush()
    assert seen == [] and not sync.attached


def test_back_from_first_entry_leaves_the_document(history):
    history.press_back()
    assert history.exited


def test_invalid_pop_state_is_skipped(history):
    seen = []
    history.listen(seen.append)
    history.push_state({"page": 2})
    history.push_state({"page": 3})
    history.entries[1] = {"page": "nope"}
    assert history.press_back() == 1
    assert seen == []


def test_forward_with_no_later_entry_expects_no_echo(sync, history):
    assert not sync.replay_forward(2)
    assert not sync.echo_pending
    assert history.flush() == 0
    assert sync.transitions[-1].op is HistoryOp.FORWARD


def test_back_from_first_entry_expects_no_echo(sync, history):
    assert not sync.back()
    assert not sync.echo_pending
    assert history.exited


def test_fresh_stack_is_rebuilt_from_restored_entries(history):
    sync = HistorySynchronizer(history, [{"page": 1}, {"page": 2}, {"page": 3}])
    sync.initialize(1)
    assert history.length == 3 and history.index == 0

    sync.forward_to(2)
    assert sync.echo_pending
    assert history.state == {"page": 2}
    assert history.flush() == 1


def test_stack_with_its_own_navigation_is_left_alone(history):
    history.replace_state({"page": 1})
    history.push_state({"page": 2})
    history.restore_entries([{"page": 1}, {"page": 2}, {"page": 3}], {"page": 1})
    assert history.entries == [{"page": 1}, {"page": 2}]
    assert history.index == 1
