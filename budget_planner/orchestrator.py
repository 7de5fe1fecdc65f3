"""
Main Orchestrator for Budget Planner

This module ties together all the components and defines the
end-to-end flows for:
1. Plans (load → align window → project → edit → persist → push)
2. Dashboard (profile + balance sheet totals, served from cache)
3. Background sync (version vector → changed entity types only)

DESIGN DECISION: The orchestrator owns construction only. Components
receive their collaborators explicitly, so tests can build the same
graph with an in-memory store and a fake remote.
"""

from dataclasses import dataclass
from datetime import date
from typing import Callable, Optional

import structlog

from budget_planner.audit import AuditLogger, configure_logging
from budget_planner.config import get_settings
from budget_planner.engine import age_on, assets_total, debts_total
from budget_planner.models.entities import Asset, Debt, EntityType, User
from budget_planner.plans import PlanMutationService
from budget_planner.services.remote import HttpRemoteApi, RemoteApi
from budget_planner.services.storage import (
    AuditStorageInterface,
    EntityCacheStore,
    JsonFileEntityStore,
    JsonLinesAuditStorage,
    MemoryEntityStore,
)
from budget_planner.sync import SyncCoordinator, UserIdProvider


logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class DashboardSummary:
    """Figures shown on the home page."""
    user: Optional[User]
    assets: list[Asset]
    debts: list[Debt]
    assets_total: float
    debts_total: float
    net_worth: float
    age: Optional[int]


class DashboardFlow:
    """
    Builds the dashboard from cached entities.

    The profile is cached like any other collection (a list of one).
    """

    def __init__(
        self,
        coordinator: SyncCoordinator,
        remote: RemoteApi,
        today: Callable[[], date] = date.today,
    ):
        self._coordinator = coordinator
        self._remote = remote
        self._today = today

    async def _fetch_profile(self) -> list[dict]:
        user = await self._remote.get_current_user()
        return [user.to_wire()] if user else []

    async def load(self) -> DashboardSummary:
        users = await self._coordinator.get_data(EntityType.USERS, self._fetch_profile)
        assets = [
            Asset.model_validate(record)
            for record in await self._coordinator.get_data(EntityType.ASSETS)
        ]
        debts = [
            Debt.model_validate(record)
            for record in await self._coordinator.get_data(EntityType.DEBTS)
        ]

        user = User.model_validate(users[0]) if users else None
        age = None
        if user and user.birthday_string:
            try:
                age = age_on(user.birthday_string, self._today())
            except ValueError:
                logger.warning("invalid_birthday", user_id=user.id)

        total_assets = assets_total(assets)
        total_debts = debts_total(debts)
        return DashboardSummary(
            user=user,
            assets=assets,
            debts=debts,
            assets_total=total_assets,
            debts_total=total_debts,
            net_worth=total_assets - total_debts,
            age=age,
        )


@dataclass
class AppComponents:
    store: EntityCacheStore
    remote: RemoteApi
    audit_logger: AuditLogger
    coordinator: SyncCoordinator
    plans: PlanMutationService
    dashboard: DashboardFlow

    async def aclose(self) -> None:
        await self.coordinator.wait_for_background()
        await self.remote.aclose()


def _create_store() -> EntityCacheStore:
    cache = get_settings().cache
    if cache.backend == "memory":
        return MemoryEntityStore(cache.key_prefix)
    return JsonFileEntityStore(cache.data_dir, cache.key_prefix)


def create_app_components(
    user_id_provider: UserIdProvider,
    remote: Optional[RemoteApi] = None,
    store: Optional[EntityCacheStore] = None,
    audit_storage: Optional[AuditStorageInterface] = None,
    use_audit_storage: bool = True,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        user_id_provider: Async callable returning the signed-in user's id.
        remote: Remote API; defaults to HttpRemoteApi from settings.
        store: Entity cache; defaults to the configured backend.
        audit_storage: Where audit events are persisted.
        use_audit_storage: Set to False to only log audit events locally.

    Returns:
        AppComponents with every service wired together
    """
    settings = get_settings()
    configure_logging("DEBUG" if settings.app.debug_mode else settings.app.log_level)

    # A broken cache directory surfaces later as logged write failures
    store = store or _create_store()

    if use_audit_storage and audit_storage is None:
        audit_storage = JsonLinesAuditStorage(settings.cache.data_dir / "audit.jsonl")
    audit_logger = AuditLogger(audit_storage if use_audit_storage else None)

    remote = remote or HttpRemoteApi(settings.api)
    coordinator = SyncCoordinator(
        store=store,
        remote=remote,
        user_id_provider=user_id_provider,
        audit_logger=audit_logger,
        settings=settings.sync,
    )
    logger.info(
        "app_components_created",
        environment=settings.app.app_environment,
        cache_backend=type(store).__name__,
    )

    return AppComponents(
        store=store,
        remote=remote,
        audit_logger=audit_logger,
        coordinator=coordinator,
        plans=PlanMutationService(coordinator, audit_logger),
        dashboard=DashboardFlow(coordinator, remote),
    )
