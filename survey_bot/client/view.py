"""
The participant-facing surface the runtime drives.

SurveyView lists every visible effect the navigation and conversation engines have;
HeadlessView keeps them in memory so a scripted participant (or a test) can both drive
the inputs and read back what would be on screen.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from ..enums import MessageAuthor


class SurveyView(ABC):
    # pages
    @abstractmethod
    def show_page(self, element_id: str) -> None: ...

    @abstractmethod
    def set_progress(self, fraction: float) -> None: ...

    @abstractmethod
    def set_chat_visible(self, visible: bool) -> None: ...

    # controls and inputs
    @abstractmethod
    def set_start_enabled(self, enabled: bool) -> None: ...

    @abstractmethod
    def is_start_enabled(self) -> bool: ...

    @abstractmethod
    def set_continue_enabled(self, enabled: bool) -> None: ...

    @abstractmethod
    def is_continue_enabled(self) -> bool: ...

    @abstractmethod
    def set_consent(self, checked: bool) -> None: ...

    @abstractmethod
    def consent_checked(self) -> bool: ...

    @abstractmethod
    def set_answer(self, question: str, value: str) -> None: ...

    @abstractmethod
    def answer(self, question: str) -> str: ...

    # transcript
    @abstractmethod
    def add_message(self, text: str, author: MessageAuthor) -> None: ...

    @abstractmethod
    def show_typing(self) -> None: ...

    @abstractmethod
    def hide_typing(self) -> bool:
        """Remove the typing indicator; returns whether one was showing."""

    @abstractmethod
    def scroll_messages_to_bottom(self) -> None: ...

    # viewport
    @abstractmethod
    def scroll_y(self) -> float: ...

    @abstractmethod
    def scroll_to(self, top: float, smooth: bool = False) -> None: ...

    @abstractmethod
    def measure_layout(self, element_id: str) -> float: ...

    @abstractmethod
    def set_viewport_unit(self, vh_px: float, offset_top: float) -> None: ...

    @abstractmethod
    def alert(self, message: str) -> None: ...


@dataclass
class HeadlessView(SurveyView):
    active_page: Optional[str] = None
    progress: float = 0.0
    chat_visible: bool = False
    start_enabled: bool = False
    continue_enabled: bool = False
    consent: bool = False
    answers: Dict[str, str] = field(default_factory=dict)
    messages: List[Tuple[str, MessageAuthor]] = field(default_factory=list)
    typing_visible: bool = False
    current_scroll: float = 0.0
    scroll_log: List[Tuple[float, bool]] = field(default_factory=list)
    layout_reads: List[str] = field(default_factory=list)
    vh_px: Optional[float] = None
    offset_top: float = 0.0
    alerts: List[str] = field(default_factory=list)
    messages_scrolled: int = 0

    def show_page(self, element_id: str) -> None:
        self.active_page = element_id

    def set_progress(self, fraction: float) -> None:
        self.progress = fraction

    def set_chat_visible(self, visible: bool) -> None:
        self.chat_visible = visible

    def set_start_enabled(self, enabled: bool) -> None:
        self.start_enabled = enabled

    def is_start_enabled(self) -> bool:
        return self.start_enabled

    def set_continue_enabled(self, enabled: bool) -> None:
        self.continue_enabled = enabled

    def is_continue_enabled(self) -> bool:
        return self.continue_enabled

    def set_consent(self, checked: bool) -> None:
        self.consent = checked

    def consent_checked(self) -> bool:
        return self.consent

    def set_answer(self, question: str, value: str) -> None:
        self.answers[question] = value

    def answer(self, question: str) -> str:
        return self.answers.get(question, "")

    def add_message(self, text: str, author: MessageAuthor) -> None:
        self.messages.append((text, author))
        self.scroll_messages_to_bottom()

    def show_typing(self) -> None:
        self.typing_visible = True
        self.scroll_messages_to_bottom()

    def hide_typing(self) -> bool:
        was_visible, self.typing_visible = self.typing_visible, False
        return was_visible

    def scroll_messages_to_bottom(self) -> None:
        self.messages_scrolled += 1

    def scroll_y(self) -> float:
        return self.current_scroll

    def scroll_to(self, top: float, smooth: bool = False) -> None:
        self.current_scroll = top
        self.scroll_log.append((top, smooth))

    def measure_layout(self, element_id: str) -> float:
        self.layout_reads.append(element_id)
        return 0.0

    def set_viewport_unit(self, vh_px: float, offset_top: float) -> None:
        self.vh_px = vh_px
        self.offset_top = offset_top

    def alert(self, message: str) -> None:
        self.alerts.append(message)

    @property
    def transcript(self) -> List[str]:
        return [text for text, _ in self.messages]
