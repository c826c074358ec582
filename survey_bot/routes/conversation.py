# survey_bot/routes/conversation.py
"""
Conversation proxy to the vendor agent. The participant never sees a Direct Line
secret; the backend picks the one configured for the participant's treatment group.

POST /startconversation {treatmentGroup}                           -> {conversationId}
POST /getactivities     {conversationId, watermark, treatmentGroup} -> {activities[], watermark}
POST /sendmessage       {conversationId, text, treatmentGroup}      -> {id}
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, Optional, Tuple

from flask import Blueprint, current_app, jsonify, request

from ..directline import DirectLineError

log = logging.getLogger(__name__)
bp = Blueprint("conversation", __name__)


def _body() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _missing(data: Dict[str, Any], fields: Iterable[str]) -> Optional[Tuple[Any, int]]:
    absent = [f for f in fields if not data.get(f)]
    if absent:
        return jsonify({"error": f"missing required fields: {', '.join(absent)}"}), 400
    return None


def _vendor_failure(op: str, e: DirectLineError):
    log.error(f"DIRECTLINE_PROXY_FAILED | op={op} | status={e.status} | error={e}")
    return jsonify({"error": "conversation service unavailable"}), 502


@bp.post("/startconversation")
def start_conversation():
    data = _body()
    group = data.get("treatmentGroup")
    try:
        conversation_id = current_app.extensions["directline"].for_group(group).start_conversation()
    except DirectLineError as e:
        return _vendor_failure("start", e)

    log.info(f"CONVERSATION_STARTED | conversation={conversation_id} | group={group}")
    return jsonify({"conversationId": conversation_id}), 200


@bp.post("/getactivities")
def get_activities():
    data = _body()
    error = _missing(data, ["conversationId"])
    if error:
        return error
    try:
        result = current_app.extensions["directline"].for_group(data.get("treatmentGroup")).get_activities(
            data["conversationId"], data.get("watermark")
        )
    except DirectLineError as e:
        return _vendor_failure("activities", e)

    log.debug(
        f"ACTIVITIES_PROXIED | conversation={data['conversationId']} | "
        f"count={len(result['activities'])} | watermark={result['watermark']}"
    )
    return jsonify(result), 200


@bp.post("/sendmessage")
def send_message():
    data = _body()
    error = _missing(data, ["conversationId", "text"])
    if error:
        return error
    try:
        activity_id = current_app.extensions["directline"].for_group(data.get("treatmentGroup")).send_message(
            data["conversationId"], data["text"]
        )
    except DirectLineError as e:
        return _vendor_failure("send", e)

    log.info(f"MESSAGE_PROXIED | conversation={data['conversationId']} | activity={activity_id}")
    return jsonify({"id": activity_id}), 200
