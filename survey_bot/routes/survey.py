# survey_bot/routes/survey.py
"""
Participant metadata and response persistence.

GET  /generateSurveyData -> {participantId, treatmentGroup}
POST /submit             {participantId, treatmentGroup, conversationLog, ...answers}
"""
from __future__ import annotations

import logging
from typing import Any, Dict

from flask import Blueprint, current_app, jsonify, request
from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError

from ..database import save_submission
from ..identifiers import new_participant_id
from ..models import SurveyMetadata

log = logging.getLogger(__name__)
bp = Blueprint("survey", __name__)


@bp.get("/generateSurveyData")
def generate_survey_data():
    assigner = current_app.extensions["group_assigner"]
    try:
        group = assigner.next_group()
    except RedisError as e:
        log.error(f"GROUP_ASSIGN_FAILED | error={e}")
        return jsonify({"error": "could not assign treatment group"}), 503

    metadata = SurveyMetadata(participant_id=new_participant_id(), treatment_group=group)
    log.info(f"SURVEY_DATA_ISSUED | participant={metadata.participant_id} | group={group}")
    return jsonify(metadata.to_dict()), 200


@bp.post("/submit")
def submit():
    data: Dict[str, Any] = request.get_json(silent=True) or {}
    if not data.get("participantId"):
        return jsonify({"error": "participantId is required"}), 400

    cfg = current_app.extensions["survey_cfg"]
    try:
        row_id = save_submission(current_app.extensions["db_session_factory"], data, cfg.SURVEY_LIKERT_QUESTIONS)
    except SQLAlchemyError as e:
        log.exception(f"SUBMIT_STORE_FAILED | participant={data.get('participantId')} | error={e}")
        return jsonify({"error": "could not store response"}), 500

    log.info(
        f"SUBMIT_STORED | id={row_id} | participant={data['participantId']} | "
        f"group={data.get('treatmentGroup')} | log_chars={len(str(data.get('conversationLog') or ''))}"
    )
    return jsonify({"status": "ok", "id": row_id}), 200
