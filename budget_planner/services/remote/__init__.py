"""Remote API client package."""

from budget_planner.services.remote.http_client import (
    API_ENDPOINTS,
    HttpRemoteApi,
)
from budget_planner.services.remote.interface import (
    EntityEndpoint,
    RemoteApi,
    RemoteApiError,
    RemoteRequestError,
    RemoteUnavailableError,
)

__all__ = [
    "API_ENDPOINTS",
    "EntityEndpoint",
    "HttpRemoteApi",
    "RemoteApi",
    "RemoteApiError",
    "RemoteRequestError",
    "RemoteUnavailableError",
]
