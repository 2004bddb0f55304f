"""Periodic housekeeping for all organizations.

Each cycle refreshes the advisory usage counters stored on organizations and
moves ACTIVE certificates whose expiry date has passed to EXPIRED. Quota
enforcement never reads the counters, so a missed cycle only delays what the
dashboards show.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from fastapi import FastAPI
from sqlalchemy.ext.asyncio import AsyncSession

from certisure.agents.health import AgentHealth
from certisure.core.certificates import CertificateService
from certisure.core.config import settings
from certisure.core.db import AsyncSessionLocal
from certisure.core.organizations import OrganizationService, platform_scope
from certisure.core.plans import PlanRegistry, default_plan_cache
from certisure.core.repositories.organizations import OrganizationRepository
from certisure.models.base import utcnow

logger = logging.getLogger(__name__)

ORGANIZATION_PAGE_SIZE = 200


@dataclass(frozen=True, slots=True)
class MaintenanceReport:
    organizations_scanned: int
    organizations_reconciled: int
    certificates_expired: int


class MaintenanceAgent:
    def __init__(
        self,
        session_factory: Callable[[], AsyncSession] = AsyncSessionLocal,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.health = AgentHealth(name="maintenance-agent", ready=True)
        self.session_factory = session_factory
        self.clock = clock
        self._stop_event = asyncio.Event()

    async def stop(self) -> None:
        self._stop_event.set()

    async def _reconcile_organizations(self, session: AsyncSession) -> tuple[int, int]:
        scope = platform_scope()
        service = OrganizationService(
            session,
            scope,
            plans=PlanRegistry(session, cache=default_plan_cache()),
            clock=self.clock,
        )
        repository = OrganizationRepository(session, scope)

        scanned = reconciled = 0
        offset = 0
        while True:
            organizations = await repository.list(limit=ORGANIZATION_PAGE_SIZE, offset=offset)
            if not organizations:
                break
            for organization in organizations:
                scanned += 1
                if await service.reconcile_usage(organization):
                    reconciled += 1
            offset += len(organizations)

        if reconciled:
            await session.commit()
        return scanned, reconciled

    async def run_once(self) -> MaintenanceReport:
        async with self.session_factory() as session:
            scanned, reconciled = await self._reconcile_organizations(session)
            expired = await CertificateService(session, platform_scope(), clock=self.clock).expire_due()

        self.health.count("organizations_reconciled", reconciled)
        self.health.count("certificates_expired", expired)
        logger.info(
            "Maintenance cycle finished organizations=%s reconciled=%s expired=%s",
            scanned,
            reconciled,
            expired,
        )
        return MaintenanceReport(
            organizations_scanned=scanned,
            organizations_reconciled=reconciled,
            certificates_expired=expired,
        )

    async def _wait(self, seconds: float) -> None:
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)

    async def run(self) -> None:
        retry_delay = 1
        while not self._stop_event.is_set():
            self.health.mark_run()
            try:
                await self.run_once()
                self.health.mark_success()
                retry_delay = 1
                await self._wait(settings.maintenance_interval_seconds)
            except Exception as exc:  # pragma: no cover - operational path
                self.health.mark_error(exc)
                logger.exception("Maintenance cycle failed")
                await self._wait(retry_delay)
                retry_delay = min(retry_delay * 2, settings.maintenance_max_retry_delay_seconds)


maintenance_agent = MaintenanceAgent()
app = FastAPI(title="Certisure Maintenance Agent")


@app.on_event("startup")
async def startup_event() -> None:
    logging.basicConfig(level=logging.INFO)
    app.state.task = asyncio.create_task(maintenance_agent.run())


@app.on_event("shutdown")
async def shutdown_event() -> None:
    await maintenance_agent.stop()
    task: asyncio.Task[None] = app.state.task
    task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await task


@app.get("/health", tags=["system"])
async def health() -> dict[str, object]:
    return maintenance_agent.health.payload()


@app.get("/ready", tags=["system"])
async def ready() -> dict[str, bool]:
    return {"ready": maintenance_agent.health.ready}
