"""Headless participant runtime: page navigation, history shadowing and the chat engine."""
from .conversation import ConversationEngine
from .conversation_store import ConversationStateStore
from .gateway import GatewayError, HttpSurveyGateway, SubmissionError, SurveyGateway
from .history import BrowserHistory, HistorySynchronizer, InMemoryBrowserHistory
from .presence import TypingIndicator
from .reconciler import ActivityReconciler
from .router import SurveyRouter
from .scroll import ScrollRestorer, ViewportGeometry
from .session import SurveyClient
from .view import HeadlessView, SurveyView

__all__ = [
    "ActivityReconciler",
    "BrowserHistory",
    "ConversationEngine",
    "ConversationStateStore",
    "GatewayError",
    "HeadlessView",
    "HistorySynchronizer",
    "HttpSurveyGateway",
    "InMemoryBrowserHistory",
    "ScrollRestorer",
    "SubmissionError",
    "SurveyClient",
    "SurveyGateway",
    "SurveyRouter",
    "SurveyView",
    "TypingIndicator",
    "ViewportGeometry",
]
