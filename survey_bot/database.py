"""Relational store for submitted survey responses. SQLite locally, any SQLAlchemy URL in production."""
from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping

from sqlalchemy import Column, DateTime, Integer, String, Text, create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import NullPool, StaticPool
from sqlalchemy.sql import func
from sqlalchemy.types import JSON

log = logging.getLogger(__name__)

Base = declarative_base()

_IN_MEMORY_URLS = {"sqlite://", "sqlite:///:memory:"}


class SurveyResponse(Base):
    """
    One submitted survey.

    conversation_log: the participant's stored conversation JSON, verbatim
    answers: likert question -> selected value ("" when unanswered)
    """
    __tablename__ = "survey_responses"

    id = Column(Integer, primary_key=True, index=True)
    participant_id = Column(String(64), nullable=False, index=True)
    treatment_group = Column(String(64), nullable=True)
    conversation_log = Column(Text, nullable=False, default="")
    answers = Column(JSON, nullable=False, default=dict)
    submitted_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<SurveyResponse participant={self.participant_id} group={self.treatment_group}>"


def build_engine(url: str) -> Engine:
    if url in _IN_MEMORY_URLS:
        # one shared connection, otherwise every session sees an empty database
        return create_engine(url, connect_args={"check_same_thread": False}, poolclass=StaticPool)
    if url.startswith("sqlite"):
        return create_engine(url, connect_args={"check_same_thread": False}, poolclass=NullPool)
    return create_engine(
        url,
        pool_size=5,
        max_overflow=10,
        pool_timeout=30,
        pool_recycle=3600,
        pool_pre_ping=True,
    )


def build_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(engine: Engine) -> None:
    Base.metadata.create_all(bind=engine)
    log.info(f"DB_READY | url={engine.url.render_as_string(hide_password=True)}")


def ping(session_factory: sessionmaker) -> bool:
    db = session_factory()
    try:
        db.execute(text("SELECT 1"))
        return True
    finally:
        db.close()


def save_submission(session_factory: sessionmaker, payload: Mapping[str, Any], questions: Iterable[str]) -> int:
    """Store one submission and return its row id. Unknown payload keys are ignored."""
    conversation_log = payload.get("conversationLog") or ""
    if not isinstance(conversation_log, str):
        conversation_log = str(conversation_log)

    row = SurveyResponse(
        participant_id=str(payload["participantId"]),
        treatment_group=payload.get("treatmentGroup"),
        conversation_log=conversation_log,
        answers={q: str(payload.get(q) or "") for q in questions},
    )
    db = session_factory()
    try:
        db.add(row)
        db.commit()
        db.refresh(row)
        return row.id
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
