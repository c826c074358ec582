"""Logical page routing over the fixed page sequence 1..total_pages."""
from __future__ import annotations

import logging

from ..config import SurveySettings

log = logging.getLogger(__name__)

THANKYOU_ELEMENT_ID = "thankyou"


class SurveyRouter:
    """
    Owns ``current_page``. The last page is the terminal thank-you page and is only
    entered through ``enter_thankyou`` after the response was stored.
    """

    def __init__(self, settings: SurveySettings, current_page: int = 1) -> None:
        self.total_pages = settings.total_pages
        self.chatbot_page = settings.chatbot_page
        self.current_page = 1
        self.restore(current_page)

    def restore(self, page: int) -> None:
        if not 1 <= page <= self.total_pages:
            log.warning(f"PAGE_OUT_OF_RANGE | page={page} | total={self.total_pages} | using=1")
            page = 1
        self.current_page = page

    @property
    def last_data_page(self) -> int:
        return self.total_pages - 1

    @property
    def on_terminal(self) -> bool:
        return self.current_page == self.total_pages

    @property
    def on_chat_page(self) -> bool:
        return self.current_page == self.chatbot_page

    def can_advance(self) -> bool:
        return self.current_page + 1 < self.total_pages

    def can_retreat(self) -> bool:
        return 1 < self.current_page < self.total_pages

    def advance(self) -> bool:
        if not self.can_advance():
            return False
        self.current_page += 1
        return True

    def retreat(self) -> bool:
        if not self.can_retreat():
            return False
        self.current_page -= 1
        return True

    def enter_thankyou(self) -> None:
        self.current_page = self.total_pages

    @property
    def progress(self) -> float:
        return (self.current_page - 1) / (self.total_pages - 1)

    @property
    def page_element_id(self) -> str:
        return element_id_for(self.current_page, self.total_pages)


def element_id_for(page: int, total_pages: int) -> str:
    return THANKYOU_ELEMENT_ID if page == total_pages else f"page{page}"
