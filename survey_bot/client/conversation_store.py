"""Persistence of the conversation transcript across page reloads."""
from __future__ import annotations

import json
import logging
from typing import Optional

from ..enums import SessionKey
from ..models import ConversationState
from ..session_store import SessionStorage

log = logging.getLogger(__name__)


class ConversationStateStore:
    """
    Whole-object load/save of the ConversationState in session storage.

    There are no partial updates: callers load, change the returned copy and save it
    back, so nothing else observes a half-applied change within a turn.
    """

    def __init__(self, storage: SessionStorage, key: SessionKey = SessionKey.CONVERSATION) -> None:
        self.storage = storage
        self.key = key

    def exists(self) -> bool:
        return self.storage.get(self.key) is not None

    def raw(self) -> Optional[str]:
        return self.storage.get(self.key)

    def load(self) -> ConversationState:
        raw = self.storage.get(self.key)
        if raw is None:
            return ConversationState()
        try:
            return ConversationState.from_dict(json.loads(raw))
        except (json.JSONDecodeError, TypeError, ValueError, AttributeError) as e:
            log.warning(f"CONVERSATION_STATE_CORRUPT | error={e} | resetting")
            self.storage.remove(self.key)
            return ConversationState()

    def save(self, state: ConversationState) -> None:
        self.storage.set(self.key, state.to_json())

    def clear(self) -> None:
        self.storage.remove(self.key)
