"""
HTTP side of the participant runtime: the survey backend's metadata, submission and
conversation-proxy endpoints.
"""
from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, Mapping, Optional

import aiohttp

from ..models import ActivityBatch, SurveyMetadata, Watermark

log = logging.getLogger(__name__)


class GatewayError(RuntimeError):
    """A conversation endpoint could not be reached or answered with an error."""

    def __init__(self, endpoint: str, message: str, status: Optional[int] = None) -> None:
        super().__init__(f"{endpoint}: {message}")
        self.endpoint = endpoint
        self.status = status


class SubmissionError(GatewayError):
    """The response could not be stored. ``status`` is None for network failures."""


class SurveyGateway(ABC):
    @abstractmethod
    async def fetch_metadata(self) -> SurveyMetadata: ...

    @abstractmethod
    async def submit(self, payload: Mapping[str, Any]) -> None: ...

    @abstractmethod
    async def start_conversation(self, treatment_group: str) -> str: ...

    @abstractmethod
    async def get_activities(self, conversation_id: str, watermark: Watermark, treatment_group: str) -> ActivityBatch: ...

    @abstractmethod
    async def send_message(self, conversation_id: str, text: str, treatment_group: str) -> str: ...


class HttpSurveyGateway(SurveyGateway):
    def __init__(self, base_url: str, timeout: float = 10.0, insecure: bool = False) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.insecure = insecure

    async def _request(self, method: str, endpoint: str, payload: Optional[Mapping[str, Any]] = None,
                       error_cls: type = GatewayError) -> Dict[str, Any]:
        url = f"{self.base_url}{endpoint}"
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        connector = aiohttp.TCPConnector(ssl=False) if self.insecure else None
        started = time.perf_counter()
        try:
            async with aiohttp.ClientSession(timeout=timeout, connector=connector) as session:
                async with session.request(method, url, json=payload) as resp:
                    elapsed_ms = (time.perf_counter() - started) * 1000
                    if not 200 <= resp.status < 300:
                        body = await resp.text()
                        log.warning(f"GATEWAY_BAD_STATUS | endpoint={endpoint} | status={resp.status} | body={body[:200]}")
                        raise error_cls(endpoint, f"HTTP {resp.status}", status=resp.status)
                    log.debug(f"GATEWAY_OK | endpoint={endpoint} | status={resp.status} | elapsed_ms={elapsed_ms:.1f}")
                    if resp.content_length == 0:
                        return {}
                    data = await resp.json(content_type=None)
                    return data if isinstance(data, dict) else {}
        except asyncio.TimeoutError as e:
            log.error(f"GATEWAY_TIMEOUT | endpoint={endpoint} | timeout={self.timeout}")
            raise error_cls(endpoint, "timeout") from e
        except aiohttp.ClientError as e:
            log.error(f"GATEWAY_CLIENT_ERROR | endpoint={endpoint} | error={e} | type={type(e).__name__}")
            raise error_cls(endpoint, str(e)) from e

    async def fetch_metadata(self) -> SurveyMetadata:
        data = await self._request("GET", "/generateSurveyData")
        try:
            return SurveyMetadata.from_dict(data)
        except KeyError as e:
            raise GatewayError("/generateSurveyData", f"missing field {e}") from e

    async def submit(self, payload: Mapping[str, Any]) -> None:
        await self._request("POST", "/submit", payload, error_cls=SubmissionError)

    async def start_conversation(self, treatment_group: str) -> str:
        data = await self._request("POST", "/startconversation", {"treatmentGroup": treatment_group})
        conversation_id = data.get("conversationId")
        if not conversation_id:
            raise GatewayError("/startconversation", "no conversationId in response")
        return str(conversation_id)

    async def get_activities(self, conversation_id: str, watermark: Watermark, treatment_group: str) -> ActivityBatch:
        data = await self._request(
            "POST",
            "/getactivities",
            {"conversationId": conversation_id, "watermark": watermark, "treatmentGroup": treatment_group},
        )
        batch = ActivityBatch.from_payload(data)
        if batch.rejected:
            log.warning(f"ACTIVITIES_REJECTED | conversation={conversation_id} | count={batch.rejected}")
        return batch

    async def send_message(self, conversation_id: str, text: str, treatment_group: str) -> str:
        data = await self._request(
            "POST",
            "/sendmessage",
            {"conversationId": conversation_id, "text": text, "treatmentGroup": treatment_group},
        )
        activity_id = data.get("id")
        if not activity_id:
            raise GatewayError("/sendmessage", "no id in response")
        return str(activity_id)
