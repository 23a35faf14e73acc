"""
Test Session Service client.

HTTP client for the vocational test backend: session creation, question
retrieval and response submission. Responses use a {"data": ...} envelope.
"""

import asyncio
import logging
from typing import Any, Optional, Protocol

import aiohttp
from pydantic import ValidationError

from vocational_voice.config import settings
from vocational_voice.errors import BackendError
from vocational_voice.models import Ack, Question, Session, SubmitResponsePayload

logger = logging.getLogger(__name__)


class TestSessionService(Protocol):
    """Backend collaborator consumed by the session progression orchestrator."""

    async def create_session(self, user_id: Optional[str] = None) -> Session: ...

    async def next_question(self, session_id: str) -> Optional[Question]: ...

    async def submit_response(self, payload: SubmitResponsePayload) -> Ack: ...


class HttpTestSessionClient:
    """
    aiohttp implementation of TestSessionService.

    Features:
    - Persistent HTTP session with connection pooling
    - Typed results parsed with pydantic
    - Transport errors and non-2xx responses raised as BackendError
    """

    def __init__(self, base_url: Optional[str] = None, timeout_s: Optional[float] = None):
        self.base_url = (base_url or settings.session_api_url).rstrip("/")
        self.timeout_s = timeout_s or settings.session_api_timeout_s

        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create persistent aiohttp session with connection pooling."""
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(
                limit=5,
                ttl_dns_cache=300,
                keepalive_timeout=60,
            )
            timeout = aiohttp.ClientTimeout(
                total=self.timeout_s,
                connect=5,
            )
            self._session = aiohttp.ClientSession(
                connector=connector,
                timeout=timeout,
                headers={"Content-Type": "application/json"},
            )
            logger.info(f"Created test session HTTP client for {self.base_url}")

        return self._session

    async def close(self) -> None:
        """Close persistent session."""
        if self._session and not self._session.closed:
            await self._session.close()
            logger.info("Closed test session HTTP client")

    async def __aenter__(self) -> "HttpTestSessionClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def create_session(self, user_id: Optional[str] = None) -> Session:
        """POST /sessions"""
        data = await self._request("POST", "/sessions", {"user_id": user_id})
        if not isinstance(data, dict):
            raise BackendError(f"Unexpected session payload: {data!r}")

        session_id = data.get("id") or data.get("session_id") or data.get("sessionId")
        try:
            return Session(session_id=session_id)
        except ValidationError as e:
            raise BackendError(f"Invalid session payload: {e}", cause=e) from e

    async def next_question(self, session_id: str) -> Optional[Question]:
        """GET /questions/{session_id}/next; None when the test is complete."""
        data = await self._request("GET", f"/questions/{session_id}/next")
        if not data:
            return None

        # Some backend versions wrap the question: {"question": {...}}
        if isinstance(data, dict) and isinstance(data.get("question"), dict):
            data = data["question"]

        try:
            return Question.model_validate(data)
        except ValidationError as e:
            raise BackendError(f"Invalid question payload: {e}", cause=e) from e

    async def submit_response(self, payload: SubmitResponsePayload) -> Ack:
        """POST /questions/response"""
        data = await self._request("POST", "/questions/response", payload.model_dump())
        return Ack(accepted=True, data=data if isinstance(data, dict) else None)

    async def _request(self, method: str, path: str, body: Optional[dict] = None) -> Any:
        session = await self._get_session()
        url = f"{self.base_url}{path}"

        try:
            async with session.request(method, url, json=body) as response:
                if response.status >= 400:
                    text = await response.text()
                    logger.error(f"Backend {method} {path} returned {response.status}: {text[:200]}")
                    raise BackendError(
                        f"{method} {path} failed with status {response.status}",
                        status=response.status,
                    )
                payload = await response.json(content_type=None)

        except aiohttp.ClientError as e:
            logger.error(f"Backend {method} {path} transport error: {e}")
            raise BackendError(f"{method} {path} failed: {e}", cause=e) from e
        except asyncio.TimeoutError as e:
            logger.error(f"Backend {method} {path} timed out after {self.timeout_s}s")
            raise BackendError(f"{method} {path} timed out", cause=e) from e

        logger.debug(f"Backend {method} {path} OK")
        if isinstance(payload, dict) and "data" in payload:
            return payload["data"]
        return payload
