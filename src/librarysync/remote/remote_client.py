"""Async client for the remote file host."""

from __future__ import annotations

import logging
import random
from collections.abc import Callable
from typing import Any, Mapping

import httpx

from ..exceptions import AuthError, NotFoundError, TransientError
from ..utils.async_utils import wrap_sleep
from .remote_models import (
    RemoteEntry,
    RemoteFileInfo,
    RemoteSession,
    to_remote_entries,
    to_remote_file_info,
)

logger = logging.getLogger(__name__)

RETRYABLE_STATUSES = frozenset({429, 500, 502, 503, 504})


class RemoteClient:
    """Thin wrapper over the host's JSON API.

    Every call after :meth:`login` takes the returned :class:`RemoteSession`
    explicitly; the client itself keeps no authentication state.
    """

    def __init__(
        self,
        *,
        base_url: str,
        username: str,
        password: str,
        app_token: str = "",
        timeout_seconds: float = 30.0,
        max_retries: int = 3,
        retry_base_delay: float = 0.6,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Any] | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._username = username
        self._password = password
        self._app_token = app_token
        self._timeout = httpx.Timeout(timeout_seconds, connect=min(10.0, timeout_seconds))
        self._max_retries = max(1, max_retries)
        self._retry_base_delay = max(0.0, retry_base_delay)
        self._transport = transport
        self._sleep = wrap_sleep(sleep)
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "RemoteClient":
        return self

    async def __aexit__(self, exc_type, exc_value, traceback) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    async def login(self) -> RemoteSession:
        if not self._username or not self._password:
            raise AuthError("Remote credentials are not configured")
        response = await self._request(
            "PUT",
            "/v6/session",
            operation="login",
            json={"login": self._username, "password": self._password},
        )
        body = _json(response)
        session = body.get("session") if isinstance(body.get("session"), Mapping) else {}
        token = body.get("token_id") or body.get("token") or session.get("token")
        if not token:
            raise AuthError("Remote host did not return a session token")
        user = body.get("user") if isinstance(body.get("user"), Mapping) else {}
        user_login = user.get("login") or body.get("login") or self._username
        logger.info("remote.login.ok", extra={"user_login": user_login})
        return RemoteSession(token=str(token), user_login=str(user_login))

    async def get_root_folder_slug(self, session: RemoteSession) -> str:
        response = await self._request(
            "GET",
            f"/v6/user/{session.user_login}/root-folder",
            operation="root_folder",
            session=session,
        )
        body = _json(response)
        folder = body.get("folder") if isinstance(body.get("folder"), Mapping) else body
        slug = folder.get("slug") or folder.get("id")
        if not slug:
            raise TransientError("Remote host did not return the root folder slug")
        return str(slug)

    async def list_folder(self, session: RemoteSession, slug: str) -> list[RemoteEntry]:
        response = await self._request(
            "GET",
            f"/v8/user/{session.user_login}/folder/{slug}/file-list",
            operation="list_folder",
            session=session,
            resource=slug,
        )
        entries = to_remote_entries(_json(response))
        logger.debug("remote.list_folder", extra={"slug": slug, "entries": len(entries)})
        return entries

    async def get_file_detail(self, session: RemoteSession, slug: str) -> RemoteFileInfo:
        response = await self._request(
            "GET",
            f"/v7/file/{slug}/private",
            operation="file_detail",
            session=session,
            resource=slug,
        )
        return to_remote_file_info(slug, _json(response))

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------
    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    def _headers(self, session: RemoteSession | None) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._app_token:
            headers["X-Auth-Token"] = self._app_token
        if session is not None:
            headers["X-User-Token"] = session.token
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        *,
        operation: str,
        session: RemoteSession | None = None,
        resource: str | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        last_exc: Exception | None = None
        for attempt in range(1, self._max_retries + 1):
            try:
                response = await self._http().request(
                    method, path, headers=self._headers(session), **kwargs
                )
            except httpx.RequestError as exc:
                last_exc = exc
                logger.warning(
                    "remote.request.network_error",
                    extra={"operation": operation, "attempt": attempt, "error": str(exc)},
                )
                if attempt >= self._max_retries:
                    break
                await self._sleep_backoff(attempt)
                continue

            status = response.status_code
            if status in RETRYABLE_STATUSES and attempt < self._max_retries:
                logger.warning(
                    "remote.request.retry",
                    extra={"operation": operation, "attempt": attempt, "status": status},
                )
                await self._sleep_backoff(attempt)
                continue
            return self._check_status(response, operation=operation, resource=resource)

        raise TransientError(f"{operation} failed after {self._max_retries} attempts: {last_exc}") from last_exc

    @staticmethod
    def _check_status(response: httpx.Response, *, operation: str, resource: str | None) -> httpx.Response:
        status = response.status_code
        if 200 <= status < 300:
            return response
        target = f" '{resource}'" if resource else ""
        if status in (401, 403) or (operation == "login" and status == 400):
            raise AuthError(f"{operation}{target} rejected by remote host (status {status})")
        if status == 404:
            raise NotFoundError(f"{operation}{target} not found on remote host")
        raise TransientError(f"{operation}{target} failed with status {status}", status_code=status)

    async def _sleep_backoff(self, attempt: int) -> None:
        delay = self._retry_base_delay * (2 ** (attempt - 1))
        jitter = random.uniform(0, 0.2) if delay else 0.0
        await self._sleep(delay + jitter)


def _json(response: httpx.Response) -> dict[str, Any]:
    if response.status_code == 204 or not response.content:
        return {}
    try:
        body = response.json()
    except ValueError as exc:
        raise TransientError("Remote host returned invalid JSON", status_code=response.status_code) from exc
    return body if isinstance(body, dict) else {"items": body}


__all__ = ["RemoteClient", "RETRYABLE_STATUSES"]
