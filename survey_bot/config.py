"""
Configuration for the survey backend and the participant runtime.
Everything is read from the environment; run.py loads .env first.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List

BASE_DIR = Path(__file__).resolve().parent.parent

_TRUTHY = {"1", "true", "yes", "on"}


def _csv(raw: str) -> List[str]:
    return [part.strip() for part in raw.split(",") if part.strip()]


def _secret_map(raw: str) -> Dict[str, str]:
    """Parse ``groupA=secret1,groupB=secret2`` into a mapping."""
    mapping: Dict[str, str] = {}
    for pair in _csv(raw):
        group, sep, secret = pair.partition("=")
        if sep and group.strip() and secret.strip():
            mapping[group.strip()] = secret.strip()
    return mapping


class BaseConfig:
    SECRET_KEY: str = os.getenv("SECRET_KEY", "dev-secret-change-me")
    JSON_SORT_KEYS: bool = False

    # Redis
    REDIS_HOST: str = os.getenv("REDIS_HOST", "localhost")
    REDIS_PORT: int = int(os.getenv("REDIS_PORT", 6379))
    REDIS_DB: int = int(os.getenv("REDIS_DB", 0))
    REDIS_DECODE_RESPONSES: bool = True
    REDIS_TTL_SECONDS: int = int(os.getenv("REDIS_TTL_SECONDS", 3600))

    # Relational store for submitted responses
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./survey.db")

    # Direct Line (vendor agent)
    DIRECT_LINE_BASE_URL: str = os.getenv(
        "DIRECT_LINE_BASE_URL", "https://directline.botframework.com/v3/directline"
    ).rstrip("/")
    DIRECT_LINE_SECRET: str = os.getenv("DIRECT_LINE_SECRET", "")
    # Per treatment group override: "control=abc,treatment=def"
    DIRECT_LINE_SECRETS: Dict[str, str] = _secret_map(os.getenv("DIRECT_LINE_SECRETS", ""))
    DIRECT_LINE_TIMEOUT_SECONDS: int = int(os.getenv("DIRECT_LINE_TIMEOUT_SECONDS", "10"))
    DIRECT_LINE_USER_ID: str = os.getenv("DIRECT_LINE_USER_ID", "user1")

    # Experiment
    TREATMENT_GROUPS: List[str] = _csv(os.getenv("TREATMENT_GROUPS", "control,treatment"))

    # Survey layout
    SURVEY_TOTAL_PAGES: int = int(os.getenv("SURVEY_TOTAL_PAGES", "6"))
    SURVEY_CHATBOT_PAGE: int = int(os.getenv("SURVEY_CHATBOT_PAGE", "4"))
    SURVEY_LIKERT_QUESTIONS: List[str] = _csv(
        os.getenv("SURVEY_LIKERT_QUESTIONS", "gender,experience,satisfaction")
    )

    # Chat presentation
    TYPING_DELAY_MS: int = int(os.getenv("TYPING_DELAY_MS", "500"))
    INITIAL_TYPING_DELAY_MS: int = int(os.getenv("INITIAL_TYPING_DELAY_MS", "250"))
    INITIAL_BOT_MESSAGE_DELAY_MS: int = int(os.getenv("INITIAL_BOT_MESSAGE_DELAY_MS", "800"))
    POLL_INTERVAL_SECONDS: float = float(os.getenv("POLL_INTERVAL_SECONDS", "1.0"))
    CONTINUE_MIN_USER_MESSAGES: int = int(os.getenv("CONTINUE_MIN_USER_MESSAGES", "2"))

    CORS_ALLOW_ORIGINS: str = os.getenv("CORS_ALLOW_ORIGINS", "").strip()

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    def secret_for(self, treatment_group: str | None) -> str:
        if treatment_group and treatment_group in self.DIRECT_LINE_SECRETS:
            return self.DIRECT_LINE_SECRETS[treatment_group]
        return self.DIRECT_LINE_SECRET


class DevelopmentConfig(BaseConfig):
    DEBUG: bool = True


class ProductionConfig(BaseConfig):
    DEBUG: bool = False
    REDIS_TTL_SECONDS: int = int(os.getenv("REDIS_TTL_SECONDS", "7200"))


class TestingConfig(BaseConfig):
    TESTING: bool = True
    REDIS_DB: int = 15
    DATABASE_URL: str = "sqlite://"


def get_config(env: str | None = None) -> BaseConfig:
    """Get configuration instance directly - no complex manager."""
    env = (env or os.getenv("APP_ENV", os.getenv("FLASK_ENV", "development"))).lower()
    mapping = {
        "development": DevelopmentConfig,
        "production": ProductionConfig,
        "testing": TestingConfig,
        "test": TestingConfig,
    }
    config_class = mapping.get(env, DevelopmentConfig)
    cfg = config_class()

    log = logging.getLogger(__name__)
    if not hasattr(get_config, "_logged_startup"):
        log.info(
            "CONFIG_LOADED | env=%s | pages=%s | chatbot_page=%s | groups=%s | secrets=%s",
            env,
            cfg.SURVEY_TOTAL_PAGES,
            cfg.SURVEY_CHATBOT_PAGE,
            cfg.TREATMENT_GROUPS,
            sorted(cfg.DIRECT_LINE_SECRETS) or ("default" if cfg.DIRECT_LINE_SECRET else "none"),
        )
        get_config._logged_startup = True
    return cfg


@dataclass
class SurveySettings:
    """The participant-side slice of the configuration."""
    total_pages: int = 6
    chatbot_page: int = 4
    likert_questions: List[str] = field(default_factory=lambda: ["gender", "experience", "satisfaction"])
    typing_delay_ms: int = 500
    initial_typing_delay_ms: int = 250
    initial_bot_message_delay_ms: int = 800
    poll_interval_seconds: float = 1.0
    continue_min_user_messages: int = 2
    user_from_id: str = "user1"

    def __post_init__(self) -> None:
        if self.total_pages < 2:
            raise ValueError("a survey needs at least one data page and the thank-you page")
        if not 1 <= self.chatbot_page < self.total_pages:
            raise ValueError(f"chatbot_page {self.chatbot_page} outside 1..{self.total_pages - 1}")

    @classmethod
    def from_config(cls, cfg: BaseConfig) -> "SurveySettings":
        return cls(
            total_pages=cfg.SURVEY_TOTAL_PAGES,
            chatbot_page=cfg.SURVEY_CHATBOT_PAGE,
            likert_questions=list(cfg.SURVEY_LIKERT_QUESTIONS),
            typing_delay_ms=cfg.TYPING_DELAY_MS,
            initial_typing_delay_ms=cfg.INITIAL_TYPING_DELAY_MS,
            initial_bot_message_delay_ms=cfg.INITIAL_BOT_MESSAGE_DELAY_MS,
            poll_interval_seconds=cfg.POLL_INTERVAL_SECONDS,
            continue_min_user_messages=cfg.CONTINUE_MIN_USER_MESSAGES,
            user_from_id=cfg.DIRECT_LINE_USER_ID,
        )
