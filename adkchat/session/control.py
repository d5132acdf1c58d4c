"""
Control-plane client for agent sessions.

The backend exposes sessions as a REST resource::

    POST   {base}/apps/{app}/users/{user}/sessions/{session}
    DELETE {base}/apps/{app}/users/{user}/sessions/{session}

Session and user ids are chosen by the client.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any

import httpx

from adkchat.errors import SessionServiceError
from adkchat.types import SessionInfo

logger = logging.getLogger(__name__)


class SessionService:
    """
    Creates and deletes sessions on the agent backend.

    Parameters
    ----------
    base_url:
        Base URL of the backend.
    app_name:
        Agent application name.
    timeout:
        HTTP timeout in seconds.
    transport:
        Optional ``httpx`` transport, mainly for tests.
    """

    def __init__(
        self,
        base_url: str,
        app_name: str,
        *,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self.app_name = app_name
        self._timeout = timeout
        self._transport = transport

    def session_url(self, user_id: str, session_id: str, app_name: str | None = None) -> str:
        app = app_name or self.app_name
        return f"{self._base_url}/apps/{app}/users/{user_id}/sessions/{session_id}"

    async def create_session(
        self,
        initial_state: dict[str, Any] | None = None,
        *,
        user_id: str | None = None,
        session_id: str | None = None,
    ) -> SessionInfo:
        """
        Create a session and return its descriptor.

        Raises ``SessionServiceError`` if the request fails or the backend
        answers with a non-success status.
        """
        user_id = user_id or f"user-{uuid.uuid4().hex[:12]}"
        session_id = session_id or f"session-{uuid.uuid4().hex}"
        url = self.session_url(user_id, session_id)

        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                resp = await client.post(url, json={"initial_state": initial_state or {}})
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise SessionServiceError(f"Failed to create session: {exc}") from exc

        if not resp.is_success:
            raise SessionServiceError(
                f"Failed to create session: {resp.status_code} {resp.reason_phrase}"
            )

        logger.info("Created session %s for user %s", session_id, user_id)
        return SessionInfo(session_id=session_id, user_id=user_id, app_name=self.app_name)

    async def delete_session(self, session: SessionInfo) -> bool:
        """
        Delete *session* on the backend.

        Failures are logged and reported as ``False`` so the caller can
        always clean up locally.
        """
        url = self.session_url(session.user_id, session.session_id, session.app_name)
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                resp = await client.delete(url)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.warning("Failed to notify backend of session termination: %s", exc)
            return False

        if not resp.is_success:
            logger.warning(
                "Failed to delete session on backend: %s %s",
                resp.status_code,
                resp.reason_phrase,
            )
            return False
        return True
