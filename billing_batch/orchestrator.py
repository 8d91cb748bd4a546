"""
BatchOrchestrator -- DI container for location enrichment.

Contract:
    Resolves the location policy from configuration, builds the provider
    clients, wires a TaskRegistry with the location tasks, and hands out
    LocationReconcilers whose district lookups are queued on this
    orchestrator's JobQueue.  Single place where the three layers are
    composed.

Non-goals:
    - Does NOT run a worker loop; callers drain the queue with
      ``queue.run_pending()``.
    - Does NOT manage session lifecycle -- caller controls commits.
"""

from __future__ import annotations

import time
from collections.abc import Callable

from sqlalchemy.orm import Session

from billing_config.bridges import (
    ProviderSet,
    build_agent_prefix_lookup,
    build_location_policy,
    build_providers,
)
from billing_config.context import ConfigContext
from billing_config.resolver import ConfigResolver
from billing_config.schema import RuntimeSettings
from billing_kernel.domain.clock import Clock, SystemClock
from billing_kernel.domain.policy import LocationPolicy
from billing_kernel.logging_config import get_logger
from billing_kernel.services.export_registry import ExporterRegistry
from billing_kernel.services.location_service import LocationReconciler

from billing_batch.services.executor import BatchExecutor
from billing_batch.services.queue import JobQueue
from billing_batch.tasks.base import TaskRegistry
from billing_batch.tasks.location_tasks import register_location_tasks

logger = get_logger("batch.orchestrator")


class BatchOrchestrator:
    """DI container for reconciliation plus background enrichment.

    Contract:
        - ``from_settings()`` factory creates a fully wired orchestrator.
        - ``reconciler()`` returns a LocationReconciler wired to the queue.
        - ``create_executor()`` returns a BatchExecutor for any session.
        - ``queue`` enqueues and drains jobs on the orchestrator's session.
    """

    def __init__(
        self,
        session: Session,
        policy: LocationPolicy,
        providers: ProviderSet,
        settings: RuntimeSettings | None = None,
        exporters: ExporterRegistry | None = None,
        agent_prefix: Callable[[int | None], str | None] | None = None,
        clock: Clock | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._session = session
        self._settings = settings or RuntimeSettings()
        self.policy = policy
        self.providers = providers
        self.exporters = exporters or ExporterRegistry()
        self._agent_prefix = agent_prefix
        self._clock = clock or SystemClock()
        self._sleep = sleep

        self.task_registry = register_location_tasks(
            TaskRegistry(),
            self._task_reconciler,
            providers,
            self._settings.enrichment,
        )
        self.queue = JobQueue(session, self.create_executor())

    # -------------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------------

    @classmethod
    def from_settings(
        cls,
        session: Session,
        settings: RuntimeSettings,
        context: ConfigContext | None = None,
        exporters: ExporterRegistry | None = None,
        providers: ProviderSet | None = None,
        clock: Clock | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> BatchOrchestrator:
        """Create a fully wired orchestrator from runtime settings.

        The location policy is read once, through ``context`` (a fresh
        ConfigContext with the settings' cache and locale if omitted).
        """
        if context is None:
            context = ConfigContext(locale=settings.default_locale)
            context.cache.enabled = settings.config_cache_enabled
        resolver = ConfigResolver(session, context)
        return cls(
            session=session,
            policy=build_location_policy(resolver, settings.enrichment),
            providers=providers or build_providers(settings.providers),
            settings=settings,
            exporters=exporters,
            agent_prefix=build_agent_prefix_lookup(resolver),
            clock=clock,
            sleep=sleep,
        )

    # -------------------------------------------------------------------------
    # Services
    # -------------------------------------------------------------------------

    def reconciler(self, session: Session | None = None, bulk_import: bool = False) -> LocationReconciler:
        """A LocationReconciler whose district lookups go on this queue."""
        return LocationReconciler(
            session or self._session,
            policy=self.policy,
            exporters=self.exporters,
            geocoder=self.providers.geocoder,
            bulk_import=bulk_import,
            district_enqueuer=self.queue.district_enqueuer(),
            agent_prefix=self._agent_prefix,
        )

    def create_executor(self, session: Session | None = None) -> BatchExecutor:
        return BatchExecutor(
            session=session or self._session,
            task_registry=self.task_registry,
            clock=self._clock,
            sleep=self._sleep,
        )

    def _task_reconciler(self, session: Session) -> LocationReconciler:
        # Tasks never geocode inline; set_coord does that on its own schedule.
        return LocationReconciler(
            session,
            policy=self.policy,
            exporters=self.exporters,
            district_enqueuer=self.queue.district_enqueuer(),
            agent_prefix=self._agent_prefix,
        )

    @property
    def session(self) -> Session:
        return self._session
