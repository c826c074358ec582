"""Per-page scroll offsets and mobile viewport geometry."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from ..enums import SessionKey
from ..session_store import SessionStorage
from ..utils.scheduler import ScheduledTask, Scheduler
from .view import SurveyView

log = logging.getLogger(__name__)


@dataclass
class ViewportGeometry:
    inner_height: float
    # reported only by browsers with a visual viewport (mobile keyboards)
    visual_height: Optional[float] = None
    offset_top: float = 0.0

    @property
    def has_visual_viewport(self) -> bool:
        return self.visual_height is not None


class ScrollRestorer:
    def __init__(self, scheduler: Scheduler, view: SurveyView, storage: SessionStorage) -> None:
        self.scheduler = scheduler
        self.view = view
        self.storage = storage
        self.positions: Dict[int, float] = self._load()
        self._frames: List[ScheduledTask] = []

    def _load(self) -> Dict[int, float]:
        raw = self.storage.get_json(SessionKey.SCROLL_POSITIONS, {})
        if not isinstance(raw, dict):
            raw = {}
        positions: Dict[int, float] = {}
        for page, offset in raw.items():
            try:
                positions[int(page)] = float(offset)
            except (TypeError, ValueError):
                log.warning(f"SCROLL_POSITION_INVALID | page={page} | offset={offset}")
        return positions

    def _save(self) -> None:
        self.storage.set_json(SessionKey.SCROLL_POSITIONS, {str(p): y for p, y in self.positions.items()})

    def capture(self, page: int, chat_overlay_open: bool = False) -> None:
        """Record the outgoing page's offset. The chat overlay is not a page, so it is skipped."""
        if chat_overlay_open:
            return
        self.positions[page] = self.view.scroll_y()
        self._save()

    def cancel_pending(self) -> None:
        for task in self._frames:
            task.cancel()
        self._frames = []

    @property
    def pending(self) -> bool:
        return any(task.pending for task in self._frames)

    def restore(self, page: int, element_id: str) -> None:
        self.cancel_pending()
        offset = self.positions.get(page)
        if offset is None:
            self.view.scroll_to(0)
            return

        def second_frame() -> None:
            self.view.scroll_to(offset, smooth=True)

        def first_frame() -> None:
            # layout read so heights are final before scrolling
            self.view.measure_layout(element_id)
            self._frames.append(self.scheduler.request_frame(second_frame))

        self._frames = [self.scheduler.request_frame(first_frame)]

    def update_viewport(self, geometry: ViewportGeometry, chat_open_on_chat_page: bool = False) -> float:
        if geometry.has_visual_viewport:
            vh = geometry.visual_height * 0.01
            self.view.set_viewport_unit(vh, geometry.offset_top)
            self.view.scroll_messages_to_bottom()
        else:
            vh = geometry.inner_height * 0.01
            self.view.set_viewport_unit(vh, 0.0)
        if chat_open_on_chat_page:
            self.align_chat()
        return vh

    def align_chat(self) -> None:
        self.view.scroll_to(0)
        self.view.scroll_messages_to_bottom()
