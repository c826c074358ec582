"""
History shadowing
─────────────────
The survey is one document that simulates several pages, so the native back/forward
stack has to be kept in step with the logical page by hand:

* the first visit to a page pushes a native entry ``{"page": n}``,
* revisiting a page moves the native stack forward through the existing entry,
* going back always moves the native stack back.

Native moves the runtime makes itself are reported back to it as pop notifications just
like the participant's own button presses. Every native call is written to a transition
log labelled ``self_initiated`` or ``external``; a self-initiated traversal that moves the
native stack arms exactly one expected echo, and the next pop notification consumes it.
A traversal with nothing to move to arms nothing. The expectation is one-shot: if a
second pop arrives before the echo was consumed, the two are not told apart (known
limitation, no recovery).

A headless stack starts with a single entry on every resume, so ``initialize`` hands it
the restored entries to rebuild from; a browser keeps its own stack and ignores them.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections import deque
from typing import Any, Callable, Deque, Dict, List, Optional

from ..enums import HistoryOp, TransitionOrigin
from ..models import HistoryTransition, PopEvent

log = logging.getLogger(__name__)

PopHandler = Callable[[PopEvent], None]


class BrowserHistory(ABC):
    @abstractmethod
    def push_state(self, state: Dict[str, Any]) -> None: ...

    @abstractmethod
    def replace_state(self, state: Dict[str, Any]) -> None: ...

    @abstractmethod
    def back(self) -> bool:
        """Step back one entry. False when no traversal (and so no pop) will follow."""

    @abstractmethod
    def forward(self) -> bool:
        """Step forward one entry. False when there is no later entry."""

    def restore_entries(self, entries: List[Dict[str, Any]], current: Dict[str, Any]) -> None:
        """Rebuild the stack after a resume. A browser keeps its own across reloads."""

    @abstractmethod
    def listen(self, handler: PopHandler) -> None: ...

    @abstractmethod
    def unlisten(self, handler: PopHandler) -> None: ...


class InMemoryBrowserHistory(BrowserHistory):
    """
    A native history stack for headless participants.

    Like a browser, ``back``/``forward`` only queue the pop notification; it is delivered
    on ``flush()``, after the code that caused it has returned.
    """

    MAX_DELIVERIES = 100

    def __init__(self) -> None:
        self.entries: List[Dict[str, Any]] = [{}]
        self.index = 0
        self.exited = False
        self._handlers: List[PopHandler] = []
        self._queue: Deque[Dict[str, Any]] = deque()

    @property
    def length(self) -> int:
        return len(self.entries)

    @property
    def state(self) -> Dict[str, Any]:
        return self.entries[self.index]

    def push_state(self, state: Dict[str, Any]) -> None:
        del self.entries[self.index + 1:]
        self.entries.append(dict(state))
        self.index += 1

    def replace_state(self, state: Dict[str, Any]) -> None:
        self.entries[self.index] = dict(state)

    def back(self) -> bool:
        if self.index == 0:
            self.exited = True
            log.info("NATIVE_BACK_EXIT | no earlier entry")
            return False
        self.index -= 1
        self._queue.append(self.state)
        return True

    def forward(self) -> bool:
        if self.index >= len(self.entries) - 1:
            log.info("NATIVE_FORWARD_NOOP | no later entry")
            return False
        self.index += 1
        self._queue.append(self.state)
        return True

    def restore_entries(self, entries: List[Dict[str, Any]], current: Dict[str, Any]) -> None:
        # only a fresh stack is rebuilt; one with navigation of its own is left alone
        if self.length > 1 or not entries:
            return
        self.entries = [dict(e) for e in entries]
        self.index = self.entries.index(current) if current in self.entries else len(self.entries) - 1
        log.info(f"NATIVE_STACK_RESTORED | entries={self.length} | index={self.index}")

    def listen(self, handler: PopHandler) -> None:
        if handler not in self._handlers:
            self._handlers.append(handler)

    def unlisten(self, handler: PopHandler) -> None:
        if handler in self._handlers:
            self._handlers.remove(handler)

    def flush(self) -> int:
        """Deliver queued pop notifications, including ones queued while delivering."""
        delivered = 0
        while self._queue and delivered < self.MAX_DELIVERIES:
            state = self._queue.popleft()
            delivered += 1
            try:
                event = PopEvent.from_state(state)
            except ValueError as e:
                log.warning(f"POP_STATE_INVALID | error={e}")
                continue
            for handler in list(self._handlers):
                handler(event)
        return delivered

    # participant's own browser buttons
    def press_back(self) -> int:
        self.back()
        return self.flush()

    def press_forward(self) -> int:
        self.forward()
        return self.flush()


class HistorySynchronizer:
    def __init__(self, history: BrowserHistory, entries: Optional[List[Dict[str, int]]] = None) -> None:
        self.history = history
        self.entries: List[Dict[str, int]] = list(entries or [])
        self.transitions: List[HistoryTransition] = []
        self.echo_pending = False
        self._handler: Optional[PopHandler] = None

    @property
    def attached(self) -> bool:
        return self._handler is not None

    def has_entry(self, page: int) -> bool:
        return any(entry.get("page") == page for entry in self.entries)

    def _record(self, op: HistoryOp, page: Optional[int], origin: TransitionOrigin) -> None:
        transition = HistoryTransition(op=op, page=page, origin=origin)
        self.transitions.append(transition)
        log.debug(f"HISTORY_TRANSITION | op={op.value} | page={page} | origin={origin.value}")

    def _expect_echo(self) -> None:
        if self.echo_pending:
            log.warning("ECHO_ALREADY_PENDING | a second self-initiated traversal before the first echo")
        self.echo_pending = True

    # ------------------------------------------------------------------
    # self-initiated native calls
    # ------------------------------------------------------------------
    def initialize(self, page: int) -> None:
        state = {"page": page}
        if not self.has_entry(page):
            self.entries.append(state)
        self.history.restore_entries(self.entries, state)
        self.history.replace_state(state)
        self._record(HistoryOp.REPLACE, page, TransitionOrigin.SELF_INITIATED)

    def forward_to(self, page: int) -> None:
        if not self.has_entry(page):
            state = {"page": page}
            self.entries.append(state)
            self.history.push_state(state)
            self._record(HistoryOp.PUSH, page, TransitionOrigin.SELF_INITIATED)
            return
        self.replay_forward(page)

    def replay_forward(self, page: Optional[int] = None) -> bool:
        self._record(HistoryOp.FORWARD, page, TransitionOrigin.SELF_INITIATED)
        # an echo is only expected when the native stack actually moved
        if not self.history.forward():
            log.warning(f"NATIVE_FORWARD_MISSED | page={page} | entries={len(self.entries)}")
            return False
        self._expect_echo()
        return True

    def back(self, page: Optional[int] = None) -> bool:
        self._record(HistoryOp.BACK, page, TransitionOrigin.SELF_INITIATED)
        if not self.history.back():
            return False
        self._expect_echo()
        return True

    # ------------------------------------------------------------------
    # pop notifications
    # ------------------------------------------------------------------
    def consume_echo(self, event: PopEvent) -> bool:
        """True when ``event`` is the echo of our own traversal (and is now consumed)."""
        if self.echo_pending:
            self.echo_pending = False
            self._record(HistoryOp.POP, event.page, TransitionOrigin.SELF_INITIATED)
            return True
        self._record(HistoryOp.POP, event.page, TransitionOrigin.EXTERNAL)
        return False

    def attach(self, handler: PopHandler) -> None:
        if self._handler is not None:
            self.history.unlisten(self._handler)
        self._handler = handler
        self.history.listen(handler)

    def detach(self) -> None:
        if self._handler is not None:
            self.history.unlisten(self._handler)
            self._handler = None

    def detach_and_back(self) -> None:
        """Stop handling pops, then step the native stack back once more."""
        self.detach()
        self._record(HistoryOp.BACK, None, TransitionOrigin.SELF_INITIATED)
        self.history.back()
