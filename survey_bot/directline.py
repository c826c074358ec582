"""
Direct Line client
──────────────────
Thin synchronous wrapper over the vendor agent's REST conversation API. The backend
never interprets activities; it forwards the ``activities`` list and ``watermark`` as
returned so the participant runtime can reconcile them.
"""
from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional, Union

import requests

log = logging.getLogger(__name__)


class DirectLineError(RuntimeError):
    def __init__(self, operation: str, message: str, status: Optional[int] = None) -> None:
        super().__init__(f"{operation}: {message}")
        self.operation = operation
        self.status = status


class DirectLineClient:
    def __init__(
        self,
        secret: str,
        base_url: str = "https://directline.botframework.com/v3/directline",
        timeout: int = 10,
        user_id: str = "user1",
        session: Optional[requests.Session] = None,
    ) -> None:
        if not secret:
            raise DirectLineError("init", "no Direct Line secret configured")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.user_id = user_id
        self.http = session or requests.Session()
        self._secret = secret

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self._secret}", "Content-Type": "application/json"}

    def _call(self, operation: str, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        started = time.perf_counter()
        try:
            resp = self.http.request(method, url, headers=self._headers(), timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            log.error(f"DIRECTLINE_REQUEST_FAILED | op={operation} | error={e} | type={type(e).__name__}")
            raise DirectLineError(operation, str(e)) from e

        elapsed_ms = (time.perf_counter() - started) * 1000
        if not resp.ok:
            log.warning(f"DIRECTLINE_BAD_STATUS | op={operation} | status={resp.status_code} | body={resp.text[:200]}")
            raise DirectLineError(operation, f"HTTP {resp.status_code}", status=resp.status_code)

        log.info(f"DIRECTLINE_OK | op={operation} | status={resp.status_code} | elapsed_ms={elapsed_ms:.1f}")
        try:
            data = resp.json()
        except ValueError as e:
            raise DirectLineError(operation, "response is not JSON", status=resp.status_code) from e
        if not isinstance(data, dict):
            raise DirectLineError(operation, "response is not an object", status=resp.status_code)
        return data

    def start_conversation(self) -> str:
        data = self._call("start_conversation", "POST", "/conversations")
        conversation_id = data.get("conversationId")
        if not conversation_id:
            raise DirectLineError("start_conversation", "no conversationId in response")
        return str(conversation_id)

    def get_activities(self, conversation_id: str, watermark: Union[str, int, None] = None) -> Dict[str, Any]:
        params = {"watermark": watermark} if watermark not in (None, "") else None
        data = self._call("get_activities", "GET", f"/conversations/{conversation_id}/activities", params=params)
        return {"activities": data.get("activities") or [], "watermark": data.get("watermark")}

    def send_message(self, conversation_id: str, text: str) -> str:
        activity = {"type": "message", "from": {"id": self.user_id}, "text": text}
        data = self._call("send_message", "POST", f"/conversations/{conversation_id}/activities", json=activity)
        activity_id = data.get("id")
        if not activity_id:
            raise DirectLineError("send_message", "no id in response")
        return str(activity_id)


class DirectLineRegistry:
    """One client per treatment group, each with that group's secret."""

    def __init__(self, cfg: Any, session: Optional[requests.Session] = None) -> None:
        self.cfg = cfg
        self._session = session
        self._clients: Dict[str, DirectLineClient] = {}

    def for_group(self, treatment_group: Optional[str]) -> DirectLineClient:
        secret = self.cfg.secret_for(treatment_group)
        if secret not in self._clients:
            self._clients[secret] = DirectLineClient(
                secret,
                base_url=self.cfg.DIRECT_LINE_BASE_URL,
                timeout=self.cfg.DIRECT_LINE_TIMEOUT_SECONDS,
                user_id=self.cfg.DIRECT_LINE_USER_ID,
                session=self._session,
            )
        return self._clients[secret]
