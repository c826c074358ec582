"""
Dataclass models shared by the participant runtime and the survey backend.

Everything that crosses a storage or network boundary is parsed into one of these
types first (``from_dict`` / ``from_payload``) and serialised back with ``to_dict``.
The serialised key names match the ones the survey pages have always written to
session storage, so a stored conversation doubles as the submitted conversation log.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Mapping, Optional, Set, Union

from .enums import ActivityType, HistoryOp, MessageAuthor, TransitionOrigin


class ActivityValidationError(ValueError):
    """Raised when a remote activity payload cannot be interpreted."""


Watermark = Union[str, int, None]


# ─────────────────────────────────────────────────────────────
# Conversation
# ─────────────────────────────────────────────────────────────
@dataclass
class Activity:
    id: str
    type: str
    from_id: str
    text: str = ""

    @property
    def is_message(self) -> bool:
        return self.type == ActivityType.MESSAGE.value

    @classmethod
    def from_payload(cls, payload: Any) -> "Activity":
        if not isinstance(payload, Mapping):
            raise ActivityValidationError(f"activity must be an object, got {type(payload).__name__}")
        activity_id = payload.get("id")
        if not activity_id:
            raise ActivityValidationError("activity has no id")
        sender = payload.get("from") or {}
        from_id = sender.get("id", "") if isinstance(sender, Mapping) else str(sender)
        return cls(
            id=str(activity_id),
            type=str(payload.get("type") or ""),
            from_id=str(from_id or ""),
            text=str(payload.get("text") or ""),
        )


@dataclass
class ActivityBatch:
    activities: List[Activity] = field(default_factory=list)
    watermark: Watermark = None
    rejected: int = 0

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "ActivityBatch":
        """Parse a ``/getactivities`` response, dropping entries that fail validation."""
        activities: List[Activity] = []
        rejected = 0
        for raw in payload.get("activities") or []:
            try:
                activities.append(Activity.from_payload(raw))
            except ActivityValidationError:
                rejected += 1
        return cls(activities=activities, watermark=payload.get("watermark"), rejected=rejected)


@dataclass
class TranscriptMessage:
    text: str
    author: MessageAuthor
    activity_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"text": self.text, "from": self.author.value, "activityId": self.activity_id}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TranscriptMessage":
        return cls(
            text=str(data.get("text") or ""),
            author=MessageAuthor(data.get("from", MessageAuthor.BOT.value)),
            activity_id=data.get("activityId") or None,
        )


@dataclass
class ConversationState:
    conversation_id: Optional[str] = None
    watermark: Watermark = None
    messages: List[TranscriptMessage] = field(default_factory=list)
    # ordered for serialisation; membership goes through _processed
    processed_activity_ids: List[str] = field(default_factory=list)
    _processed: Set[str] = field(default_factory=set, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        self._processed = set(self.processed_activity_ids)

    def has_processed(self, activity_id: str) -> bool:
        return activity_id in self._processed

    def mark_processed(self, activity_id: str) -> None:
        if activity_id not in self._processed:
            self._processed.add(activity_id)
            self.processed_activity_ids.append(activity_id)

    def user_message_count(self) -> int:
        return sum(1 for m in self.messages if m.author is MessageAuthor.USER)

    def copy(self) -> "ConversationState":
        return ConversationState.from_dict(self.to_dict())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "conversationId": self.conversation_id,
            "watermark": self.watermark,
            "messages": [m.to_dict() for m in self.messages],
            "processedActivities": list(self.processed_activity_ids),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ConversationState":
        return cls(
            conversation_id=data.get("conversationId"),
            watermark=data.get("watermark"),
            messages=[TranscriptMessage.from_dict(m) for m in data.get("messages") or []],
            processed_activity_ids=[str(a) for a in data.get("processedActivities") or []],
        )


@dataclass
class ReconcileResult:
    state: ConversationState
    new_messages: List[TranscriptMessage] = field(default_factory=list)


@dataclass
class LinkResult:
    state: ConversationState
    linked: bool


# ─────────────────────────────────────────────────────────────
# Navigation
# ─────────────────────────────────────────────────────────────
@dataclass(frozen=True)
class PopEvent:
    """Native pop notification: the page recorded on the history entry now current."""
    page: int

    @classmethod
    def from_state(cls, state: Any) -> "PopEvent":
        if not isinstance(state, Mapping) or "page" not in state:
            raise ValueError(f"history state carries no page: {state!r}")
        return cls(page=int(state["page"]))


@dataclass(frozen=True)
class HistoryTransition:
    op: HistoryOp
    page: Optional[int]
    origin: TransitionOrigin


@dataclass
class NavigationState:
    current_page: int = 1
    history_entries: List[Dict[str, int]] = field(default_factory=list)
    scroll_positions: Dict[int, float] = field(default_factory=dict)
    chat_open: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ─────────────────────────────────────────────────────────────
# Survey data
# ─────────────────────────────────────────────────────────────
@dataclass
class SurveyMetadata:
    participant_id: str
    treatment_group: str

    def to_dict(self) -> Dict[str, str]:
        return {"participantId": self.participant_id, "treatmentGroup": self.treatment_group}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SurveyMetadata":
        return cls(participant_id=str(data["participantId"]), treatment_group=str(data["treatmentGroup"]))


@dataclass
class FormSnapshot:
    consent: bool = False
    answers: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"consent": self.consent}
        data.update(self.answers)
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], questions: List[str]) -> "FormSnapshot":
        return cls(
            consent=bool(data.get("consent")),
            answers={q: str(data.get(q) or "") for q in questions},
        )
