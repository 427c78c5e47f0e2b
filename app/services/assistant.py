"""
External assistant client (OpenAI Assistants API v2)
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx

from app.core.exceptions import AssistantError, AssistantTimeout
from app.utils.retry import async_retry

logger = logging.getLogger(__name__)

RUN_COMPLETED = "completed"
RUN_FAILED_STATUSES = frozenset({"failed", "cancelled", "expired", "incomplete"})


class BaseAssistant(ABC):
    """Narrow contract the funnel relies on"""

    @abstractmethod
    async def create_thread(self) -> str:
        """Create a conversation thread and return its id"""

    @abstractmethod
    async def ask(self, thread_id: str, message: str, instructions: Optional[str] = None) -> str:
        """Post ``message`` to the thread, run the assistant and return its reply"""

    async def aclose(self) -> None:
        return None


class OpenAIAssistant(BaseAssistant):
    def __init__(
            self,
            api_key: str,
            assistant_id: str,
            base_url: str = "https://api.openai.com/v1",
            poll_interval: float = 1.0,
            max_poll_attempts: int = 60,
            client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.assistant_id = assistant_id
        self.poll_interval = poll_interval
        self.max_poll_attempts = max_poll_attempts
        self.timeout = httpx.Timeout(30.0, connect=10.0)
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=self.timeout)

        logger.info(f"🚀 OpenAIAssistant initialized (poll {max_poll_attempts}x{poll_interval}s)")

    def _get_headers(self) -> Dict[str, str]:
        if not self.api_key or not self.assistant_id:
            raise AssistantError("OpenAI assistant is not configured")

        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "OpenAI-Beta": "assistants=v2",
        }

    async def _request(
            self,
            method: str,
            path: str,
            json: Optional[Dict[str, Any]] = None,
            params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        headers = self._get_headers()

        async def send() -> httpx.Response:
            return await self._client.request(method, path, json=json, params=params, headers=headers)

        try:
            # only reads are replayed, a replayed POST could duplicate a message or a run
            if method == "GET":
                response = await async_retry(send)
            else:
                response = await send()
        except httpx.HTTPError as e:
            logger.error(f"❌ Assistant {method} {path} failed: {e.__class__.__name__}")
            raise AssistantError(f"{method} {path}: {e.__class__.__name__}") from e

        if response.status_code >= 400:
            logger.error(f"❌ Assistant {method} {path} → HTTP {response.status_code}: {response.text[:300]}")
            raise AssistantError(f"{method} {path} returned HTTP {response.status_code}")
        return response.json()

    async def create_thread(self) -> str:
        data = await self._request("POST", "/threads", json={})
        logger.info(f"🧵 Assistant thread created: {data['id']}")
        return data["id"]

    async def ask(self, thread_id: str, message: str, instructions: Optional[str] = None) -> str:
        await self._request(
            "POST", f"/threads/{thread_id}/messages", json={"role": "user", "content": message}
        )

        payload: Dict[str, Any] = {"assistant_id": self.assistant_id, "temperature": 0}
        if instructions:
            payload["additional_instructions"] = instructions
        run = await self._request("POST", f"/threads/{thread_id}/runs", json=payload)

        await self._wait_for_run(thread_id, run["id"], run.get("status"))

        data = await self._request(
            "GET", f"/threads/{thread_id}/messages", params={"order": "desc", "limit": 20}
        )
        for item in data.get("data", []):
            if item.get("role") == "assistant":
                return self._extract_text(item)
        raise AssistantError(f"No assistant message in thread {thread_id}")

    async def _wait_for_run(self, thread_id: str, run_id: str, status: Optional[str]) -> None:
        """Bounded polling: at most max_poll_attempts reads, poll_interval apart"""
        for _ in range(self.max_poll_attempts):
            if status == RUN_COMPLETED:
                return
            if status in RUN_FAILED_STATUSES:
                raise AssistantError(f"Run {run_id} ended with status {status}")
            await asyncio.sleep(self.poll_interval)
            run = await self._request("GET", f"/threads/{thread_id}/runs/{run_id}")
            status = run.get("status")

        if status == RUN_COMPLETED:
            return
        if status in RUN_FAILED_STATUSES:
            raise AssistantError(f"Run {run_id} ended with status {status}")
        logger.error(f"⏱️ Run {run_id} still {status} after {self.max_poll_attempts} polls")
        raise AssistantTimeout(f"Run {run_id} did not complete in time")

    @staticmethod
    def _extract_text(message: Dict[str, Any]) -> str:
        parts = [
            block["text"]["value"]
            for block in message.get("content", [])
            if block.get("type") == "text"
        ]
        if not parts:
            raise AssistantError("Assistant message has no text content")
        return "\n".join(parts)

    async def aclose(self) -> None:
        await self._client.aclose()
