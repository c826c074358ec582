# survey_bot/enums.py
from enum import Enum


class MessageAuthor(str, Enum):
    USER = "user"
    BOT = "bot"


class ActivityType(str, Enum):
    MESSAGE = "message"
    TYPING = "typing"
    EVENT = "event"


class SessionKey(str, Enum):
    """Keys of the participant's session-scoped storage. All are cleared on submission."""
    PARTICIPANT_ID = "participantId"
    TREATMENT_GROUP = "treatmentGroup"
    CURRENT_PAGE = "currentPage"
    HISTORY_STATES = "historyStates"
    SCROLL_POSITIONS = "scrollPositions"
    FORM_DATA = "formData"
    CONVERSATION = "conversation"
    OPEN_CHATBOT = "openChatbot"
    CHATBOT_ALREADY_OPENED = "chatbotAlreadyOpened"
    CONTINUE_BTN_ENABLED = "continueBtnEnabled"


class HistoryOp(str, Enum):
    REPLACE = "replace"
    PUSH = "push"
    BACK = "back"
    FORWARD = "forward"
    POP = "pop"


class TransitionOrigin(str, Enum):
    SELF_INITIATED = "self_initiated"
    EXTERNAL = "external"


class PopOutcome(str, Enum):
    """How a native pop notification was resolved by the participant session."""
    ECHO_CONSUMED = "echo_consumed"
    CONSENT_BLOCKED = "consent_blocked"
    CHAT_CLOSED = "chat_closed"
    CHAT_ADVANCED = "chat_advanced"
    TERMINAL_LOCKED = "terminal_locked"
    RETREATED = "retreated"
    ADVANCED = "advanced"
    IGNORED = "ignored"
