"""
Survey Bot Application Factory
==============================

Backend of a multi-page survey with an embedded conversational agent:
- /generateSurveyData and /submit (participant metadata, response persistence)
- /startconversation, /getactivities, /sendmessage (Direct Line proxy)
- /health

The participant-side navigation and conversation engine lives in survey_bot.client.
"""
from __future__ import annotations

import logging
import os
from typing import Optional

import redis
from flask import Flask
from flask_cors import CORS
from sqlalchemy.orm import sessionmaker

from .config import BaseConfig, get_config
from .database import build_engine, build_session_factory, init_db
from .directline import DirectLineRegistry
from .identifiers import GroupAssigner
from .routes import register_routes
from .utils.helpers import iso_now

log = logging.getLogger(__name__)


def _connect_redis(cfg: BaseConfig) -> redis.Redis:
    client = redis.Redis(
        host=cfg.REDIS_HOST,
        port=cfg.REDIS_PORT,
        db=cfg.REDIS_DB,
        decode_responses=cfg.REDIS_DECODE_RESPONSES,
        socket_connect_timeout=5,
        socket_timeout=5,
        retry_on_timeout=True,
    )
    try:
        client.ping()
        log.info(f"INIT_REDIS_SUCCESS | host={cfg.REDIS_HOST} | port={cfg.REDIS_PORT} | db={cfg.REDIS_DB}")
    except redis.RedisError as e:
        # the app still boots; /health reports the outage
        log.error(f"INIT_REDIS_FAILED | host={cfg.REDIS_HOST} | error={e}")
    return client


def create_app(
    config_name: Optional[str] = None,
    *,
    redis_client: Optional[redis.Redis] = None,
    directline: Optional[DirectLineRegistry] = None,
    session_factory: Optional[sessionmaker] = None,
) -> Flask:
    """
    App factory.

    INITIALIZATION ORDER:
    1. Config (APP_ENV unless config_name is given)
    2. Redis (treatment-group counter)
    3. Response database (tables created on startup)
    4. Direct Line registry (one client per treatment-group secret)
    5. Routes and JSON error handlers

    Collaborators can be injected, which is how the tests run without Redis or the vendor.
    """
    cfg = get_config(config_name)
    app = Flask(__name__)
    app.config.from_object(cfg)
    app.config["SECRET_KEY"] = os.getenv("FLASK_SECRET_KEY", cfg.SECRET_KEY)

    allowed_origins = [o.strip() for o in cfg.CORS_ALLOW_ORIGINS.split(",") if o.strip()] or ["*"]
    CORS(
        app,
        resources={r"/*": {
            "origins": allowed_origins,
            "methods": ["GET", "POST", "OPTIONS"],
            "allow_headers": ["Content-Type"],
        }},
        supports_credentials=False,
    )

    # ────────────────────────────────────────────────────────
    # STEP 1: Redis
    # ────────────────────────────────────────────────────────
    client = redis_client if redis_client is not None else _connect_redis(cfg)
    app.extensions["redis"] = client
    app.extensions["group_assigner"] = GroupAssigner(client, cfg.TREATMENT_GROUPS)

    # ────────────────────────────────────────────────────────
    # STEP 2: Response database
    # ────────────────────────────────────────────────────────
    if session_factory is None:
        engine = build_engine(cfg.DATABASE_URL)
        init_db(engine)
        session_factory = build_session_factory(engine)
    app.extensions["db_session_factory"] = session_factory

    # ────────────────────────────────────────────────────────
    # STEP 3: Direct Line
    # ────────────────────────────────────────────────────────
    app.extensions["directline"] = directline if directline is not None else DirectLineRegistry(cfg)
    if not cfg.DIRECT_LINE_SECRET and not cfg.DIRECT_LINE_SECRETS:
        log.warning("DIRECTLINE_UNCONFIGURED | conversation endpoints will answer 502")

    app.extensions["survey_cfg"] = cfg

    # ────────────────────────────────────────────────────────
    # STEP 4: Routes
    # ────────────────────────────────────────────────────────
    register_routes(app)

    # ────────────────────────────────────────────────────────
    # STEP 5: Error Handlers
    # ────────────────────────────────────────────────────────
    @app.errorhandler(500)
    def handle_internal_error(error):
        log.error(f"INTERNAL_ERROR | error={error}", exc_info=True)
        return {
            "error": "Internal server error",
            "timestamp": iso_now(),
            "details": str(error) if app.debug else "Contact support",
        }, 500

    @app.errorhandler(404)
    def handle_not_found(error):
        return {
            "error": "Endpoint not found",
            "timestamp": iso_now(),
        }, 404

    log.info(f"APP_INIT_COMPLETE | env={config_name or os.getenv('APP_ENV', 'development')} | extensions={list(app.extensions.keys())}")
    return app
