"""
HTTP Remote API Client

Talks to the budget planner REST API with httpx.

DESIGN DECISION: Only idempotent reads are retried at the transport
level. Writes are pushed through the sync queue, which owns their
retry count; retrying them here as well would multiply attempts and
hide failures from the queue.
"""

from typing import Any, Optional

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from budget_planner.config import ApiSettings, get_settings
from budget_planner.models.entities import EntityType, User, UserVersions
from budget_planner.services.remote.interface import (
    EntityEndpoint,
    RemoteApi,
    RemoteRequestError,
    RemoteUnavailableError,
)


API_ENDPOINTS = {
    EntityType.PLANS: "/api/plans",
    EntityType.BUDGETS: "/api/budgets",
    EntityType.ASSETS: "/api/assets",
    EntityType.DEBTS: "/api/debts",
    EntityType.USERS: "/api/users",
}
USER_ME_ENDPOINT = "/api/users/me"
USER_VERSIONS_ENDPOINT = "/api/users/versions"


def _unwrap(body: Any) -> Any:
    """Accept both bare payloads and {"data": ...} envelopes."""
    if isinstance(body, dict) and set(body) == {"data"}:
        return body["data"]
    return body


class HttpRemoteApi(RemoteApi):
    """
    RemoteApi over HTTP.

    A client is built from ApiSettings on first use. Pass a transport
    (tests use httpx.MockTransport) or a whole preconfigured
    httpx.AsyncClient to control how requests are sent.
    """

    def __init__(
        self,
        settings: Optional[ApiSettings] = None,
        client: Optional[httpx.AsyncClient] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._settings = settings or get_settings().api
        self._client = client
        self._transport = transport

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            headers = {"Content-Type": "application/json"}
            if self._settings.token:
                headers["Authorization"] = f"Bearer {self._settings.token}"
            self._client = httpx.AsyncClient(
                base_url=self._settings.base_url,
                headers=headers,
                timeout=self._settings.timeout_seconds,
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def request(
        self,
        method: str,
        path: str,
        payload: Optional[dict[str, Any]] = None,
    ) -> Any:
        """
        Send one request and return the decoded payload.

        Raises:
            RemoteUnavailableError: transport failure
            RemoteRequestError: HTTP error status
        """
        client = self._get_client()
        try:
            response = await client.request(method, path, json=payload)
        except httpx.TransportError as e:
            raise RemoteUnavailableError(f"{method} {path} failed: {e}") from e

        if response.is_error:
            raise RemoteRequestError(
                response.status_code,
                f"{method} {path} returned {response.status_code}: {response.text[:200]}",
            )
        if response.status_code == 204 or not response.content:
            return None
        return _unwrap(response.json())

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(RemoteUnavailableError),
        reraise=True,
    )
    async def get(self, path: str) -> Any:
        """GET with transport-level retries."""
        return await self.request("GET", path)

    def entities(self, entity_type: EntityType) -> EntityEndpoint:
        return _HttpEntityEndpoint(self, API_ENDPOINTS[entity_type])

    async def get_user_versions(self) -> UserVersions:
        body = await self.get(USER_VERSIONS_ENDPOINT)
        return UserVersions.model_validate(body or {})

    async def get_current_user(self) -> Optional[User]:
        try:
            body = await self.get(USER_ME_ENDPOINT)
        except RemoteRequestError as e:
            if e.status_code == 404:
                return None
            raise
        return User.model_validate(body) if body else None


class _HttpEntityEndpoint(EntityEndpoint):
    """CRUD for one collection under a base path."""

    def __init__(self, api: HttpRemoteApi, base_path: str):
        self._api = api
        self._base_path = base_path

    async def list(self) -> list[dict[str, Any]]:
        body = await self._api.get(self._base_path)
        return list(body or [])

    async def create(self, payload: dict[str, Any]) -> dict[str, Any]:
        body = await self._api.request("POST", self._base_path, payload)
        return body or payload

    async def update(self, entity_id: str, payload: dict[str, Any]) -> dict[str, Any]:
        body = await self._api.request("PUT", f"{self._base_path}/{entity_id}", payload)
        return body or payload

    async def delete(self, entity_id: str) -> None:
        await self._api.request("DELETE", f"{self._base_path}/{entity_id}")
