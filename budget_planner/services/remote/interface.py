"""
Remote API Interface

The CRUD backend is an external collaborator. The client only relies on
this contract: per entity type list/create/update/delete, plus the
per-user version vector. Payloads are wire-format (camelCase) dicts;
turning them into models is the caller's business.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

from budget_planner.models.entities import EntityType, User, UserVersions


class RemoteApiError(Exception):
    """Base exception for remote API calls."""
    pass


class RemoteUnavailableError(RemoteApiError):
    """The server could not be reached (network, DNS, timeout)."""
    pass


class RemoteRequestError(RemoteApiError):
    """The server answered with an error status."""

    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        super().__init__(message)


class EntityEndpoint(ABC):
    """CRUD operations for one entity collection."""

    @abstractmethod
    async def list(self) -> list[dict[str, Any]]:
        pass

    @abstractmethod
    async def create(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Create an entity; returns the stored entity as the server sees it."""
        pass

    @abstractmethod
    async def update(self, entity_id: str, payload: dict[str, Any]) -> dict[str, Any]:
        pass

    @abstractmethod
    async def delete(self, entity_id: str) -> None:
        pass


class RemoteApi(ABC):
    """The remote CRUD backend as seen by the client."""

    @abstractmethod
    def entities(self, entity_type: EntityType) -> EntityEndpoint:
        pass

    @abstractmethod
    async def get_user_versions(self) -> UserVersions:
        pass

    @abstractmethod
    async def get_current_user(self) -> Optional[User]:
        pass

    async def aclose(self) -> None:
        """Release transport resources, if any."""
        return None
