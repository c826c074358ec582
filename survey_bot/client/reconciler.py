"""
Activity reconciliation
───────────────────────
Merges batches from the remote activity feed into the local transcript.

The feed is at-least-once: overlapping polls and the agent echoing the participant's own
message back mean the same activity id can arrive several times. Every merged id is
remembered in ``processed_activity_ids`` and never rendered twice. A message the
participant sends is shown immediately without an id; once the send call returns the
server id it is attached to that local copy (``link_sent_message``) so the later echo is
recognised as already seen.

All functions return a new state and leave their input untouched.
"""
from __future__ import annotations

import logging

from ..enums import MessageAuthor
from ..models import (
    ActivityBatch,
    ConversationState,
    LinkResult,
    ReconcileResult,
    TranscriptMessage,
)
from ..utils.helpers import watermark_advances

log = logging.getLogger(__name__)


class ActivityReconciler:
    def __init__(self, user_from_id: str = "user1") -> None:
        self.user_from_id = user_from_id

    def classify(self, from_id: str) -> MessageAuthor:
        return MessageAuthor.USER if from_id == self.user_from_id else MessageAuthor.BOT

    def reconcile(self, state: ConversationState, batch: ActivityBatch) -> ReconcileResult:
        merged = state.copy()
        new_messages = []

        for activity in batch.activities:
            if not activity.is_message:
                continue
            if merged.has_processed(activity.id):
                log.debug(f"ACTIVITY_DUPLICATE | id={activity.id}")
                continue
            message = TranscriptMessage(
                text=activity.text,
                author=self.classify(activity.from_id),
                activity_id=activity.id,
            )
            merged.messages.append(message)
            merged.mark_processed(activity.id)
            new_messages.append(message)

        if watermark_advances(merged.watermark, batch.watermark):
            merged.watermark = batch.watermark
        elif batch.watermark not in (None, "") and batch.watermark != merged.watermark:
            log.warning(f"WATERMARK_REGRESSION_IGNORED | current={merged.watermark} | received={batch.watermark}")

        return ReconcileResult(state=merged, new_messages=new_messages)

    def append_local(self, state: ConversationState, text: str) -> ConversationState:
        updated = state.copy()
        updated.messages.append(TranscriptMessage(text=text, author=MessageAuthor.USER, activity_id=None))
        return updated

    def link_sent_message(self, state: ConversationState, activity_id: str) -> LinkResult:
        updated = state.copy()
        for message in reversed(updated.messages):
            if message.author is MessageAuthor.USER and not message.activity_id:
                message.activity_id = activity_id
                updated.mark_processed(activity_id)
                return LinkResult(state=updated, linked=True)

        log.info(f"LINK_TARGET_MISSING | activity={activity_id} | no unlinked user message")
        return LinkResult(state=state.copy(), linked=False)
