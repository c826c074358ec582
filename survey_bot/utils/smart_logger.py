"""
Smart, modular logging for the survey runtime.
Provides clean, contextual logs with configurable verbosity levels.
"""

import logging
import os
import sys
from enum import Enum
from typing import Any, Dict, Optional


class LogLevel(Enum):
    MINIMAL = 1      # Only critical flow events
    STANDARD = 2     # Page transitions and conversation turns
    DETAILED = 3     # History operations and reconciliation counts
    DEBUG = 4        # Everything including API calls


class SmartLogger:
    def __init__(self, name: str, level: LogLevel = LogLevel.STANDARD):
        self.logger = logging.getLogger(name)
        self.level = level

    def set_level(self, level: LogLevel):
        """Change logging verbosity at runtime"""
        self.level = level

    def _should_log(self, required_level: LogLevel) -> bool:
        return self.level.value >= required_level.value

    def _clean_log(self, level: str, emoji: str, category: str, message: str, **kwargs):
        details = " | ".join([f"{k}={v}" for k, v in kwargs.items() if v is not None])
        if details:
            full_message = f"{emoji} {category} | {message} | {details}"
        else:
            full_message = f"{emoji} {category} | {message}"
        getattr(self.logger, level.lower())(full_message)

    # ═══════════════════════════════════════════════════════════
    # NAVIGATION
    # ═══════════════════════════════════════════════════════════

    def page_transition(self, participant: str, from_page: int, to_page: int, cause: str):
        if not self._should_log(LogLevel.MINIMAL):
            return
        self._clean_log("info", "📄", "PAGE", f"{from_page}→{to_page}", who=participant, cause=cause)

    def pop_handled(self, participant: str, target_page: int, outcome: str):
        if not self._should_log(LogLevel.STANDARD):
            return
        self._clean_log("info", "↩️", "POP", outcome, who=participant, target=target_page)

    def chat_view(self, participant: str, open_: bool):
        if not self._should_log(LogLevel.STANDARD):
            return
        self._clean_log("info", "💬", "CHAT_VIEW", "open" if open_ else "closed", who=participant)

    # ═══════════════════════════════════════════════════════════
    # CONVERSATION
    # ═══════════════════════════════════════════════════════════

    def activities_merged(self, participant: str, received: int, new: int, watermark: Any):
        if not self._should_log(LogLevel.STANDARD):
            return
        self._clean_log("info", "📥", "ACTIVITIES", f"{new}/{received} new", who=participant, watermark=watermark)

    def message_linked(self, participant: str, activity_id: str, linked: bool):
        if not self._should_log(LogLevel.DETAILED):
            return
        self._clean_log("debug", "🔗", "LINK", "linked" if linked else "no_unlinked_message",
                        who=participant, activity=activity_id)

    def submission(self, participant: str, ok: bool, detail: Optional[str] = None):
        if not self._should_log(LogLevel.MINIMAL):
            return
        self._clean_log("info" if ok else "warning", "📨", "SUBMIT", "ok" if ok else "failed",
                        who=participant, detail=detail)

    # ═══════════════════════════════════════════════════════════
    # ERRORS / DEBUG
    # ═══════════════════════════════════════════════════════════

    def error_occurred(self, participant: str, error_type: str, operation: str, error_msg: str = None):
        """Errors are always logged regardless of level"""
        self._clean_log("error", "❌", "ERROR", f"{error_type} in {operation}", who=participant, msg=error_msg)

    def warning(self, participant: str, warning_type: str, details: str = None):
        if not self._should_log(LogLevel.STANDARD):
            return
        self._clean_log("warning", "⚠️", "WARNING", warning_type, who=participant, details=details)

    def debug_state(self, participant: str, state_name: str, state_data: Dict[str, Any]):
        if not self._should_log(LogLevel.DEBUG):
            return
        # Only show keys and counts, not full data
        summary = {k: len(v) if isinstance(v, (list, dict, str)) else str(v)[:20]
                   for k, v in state_data.items()}
        self._clean_log("debug", "🔍", "STATE", state_name, who=participant, **summary)

    def api_call(self, participant: str, endpoint: str, status: str = "started"):
        if not self._should_log(LogLevel.DEBUG):
            return
        emoji = "📡" if status == "started" else "✅" if status == "success" else "❌"
        self._clean_log("debug", emoji, "API", endpoint, who=participant, status=status)


# ═══════════════════════════════════════════════════════════════════════════════
# GLOBAL LOGGER INSTANCES AND CONFIGURATION
# ═══════════════════════════════════════════════════════════════════════════════

_loggers: Dict[str, SmartLogger] = {}


def get_smart_logger(module_name: str, level: LogLevel = None) -> SmartLogger:
    """Get or create a smart logger for a module"""
    if module_name not in _loggers:
        default_level = getattr(LogLevel, os.getenv("BOT_LOG_LEVEL", "STANDARD").upper(), LogLevel.STANDARD)
        _loggers[module_name] = SmartLogger(module_name, level or default_level)

    if level:
        _loggers[module_name].set_level(level)

    return _loggers[module_name]


def configure_logging(level: LogLevel = LogLevel.STANDARD,
                      format_string: str = None,
                      silence_external: bool = True):
    """Configure the entire logging system"""
    if not format_string:
        format_string = "%(asctime)s | %(message)s"

    logging.basicConfig(
        level=logging.DEBUG if level in (LogLevel.DETAILED, LogLevel.DEBUG) else logging.INFO,
        format=format_string,
        datefmt="%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    if silence_external:
        logging.getLogger("werkzeug").setLevel(logging.WARNING)
        logging.getLogger("urllib3").setLevel(logging.WARNING)
        logging.getLogger("aiohttp.access").setLevel(logging.WARNING)
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    for smart_logger in _loggers.values():
        smart_logger.set_level(level)
