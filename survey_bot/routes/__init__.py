# survey_bot/routes/__init__.py
"""
Blueprint registration.

Every route module exposes a flask.Blueprint named **bp**. The app factory
(survey_bot.__init__) stores shared objects (redis client, Direct Line registry,
database session factory, group assigner) in `app.extensions`, and route modules
reach them through `flask.current_app`.
"""
from __future__ import annotations

import logging

from flask import Flask

from . import conversation, health, survey

log = logging.getLogger(__name__)

BLUEPRINTS = (survey.bp, conversation.bp, health.bp)


def register_routes(app: Flask) -> None:
    for bp in BLUEPRINTS:
        app.register_blueprint(bp)
        log.info(f"REGISTER_ROUTES_SUCCESS | blueprint={bp.name}")
