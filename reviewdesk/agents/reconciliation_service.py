from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable

from fastapi import FastAPI
from sqlalchemy.ext.asyncio import AsyncSession

from reviewdesk.agents.health import JobHealth
from reviewdesk.core.config import settings
from reviewdesk.core.db import AsyncSessionLocal
from reviewdesk.core.events import PlanChangePublisher
from reviewdesk.core.reconciliation import ReconciliationJob
from reviewdesk.core.subscriptions import Clock
from reviewdesk.models.base import utcnow

logger = logging.getLogger(__name__)


class ReconciliationAgent:
    """Runs the expired-subscription sweep on a fixed interval."""

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession] = AsyncSessionLocal,
        *,
        clock: Clock = utcnow,
        publisher: PlanChangePublisher | None = None,
    ) -> None:
        self.health = JobHealth(name="reconciliation-agent", ready=True)
        self._session_factory = session_factory
        self._clock = clock
        self._publisher = publisher if publisher is not None else PlanChangePublisher()
        self._stop_event = asyncio.Event()

    async def stop(self) -> None:
        self._stop_event.set()

    async def run(self) -> None:
        retry_delay = 1
        while not self._stop_event.is_set():
            self.health.mark_run()
            try:
                await self.run_once()
                self.health.mark_success()
                retry_delay = 1
                await asyncio.wait_for(
                    self._stop_event.wait(), timeout=settings.reconcile_interval_seconds
                )
            except asyncio.TimeoutError:
                continue
            except Exception as exc:  # pragma: no cover - operational path
                self.health.mark_error(exc)
                logger.exception("Reconciliation agent cycle failed")
                await asyncio.sleep(retry_delay)
                retry_delay = min(retry_delay * 2, settings.reconcile_max_retry_delay_seconds)

    async def run_once(self) -> int:
        async with self._session_factory() as session:
            job = ReconciliationJob(session, clock=self._clock, publisher=self._publisher)
            downgraded = await job.reconcile_expired()

        self.health.increment("sweeps_completed")
        self.health.increment("subscriptions_downgraded", downgraded)
        self.health.metrics["last_downgraded"] = downgraded
        return downgraded


reconciliation_agent = ReconciliationAgent()
app = FastAPI(title="Reviewdesk Reconciliation Agent")


@app.on_event("startup")
async def startup_event() -> None:
    logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))
    app.state.task = asyncio.create_task(reconciliation_agent.run())


@app.on_event("shutdown")
async def shutdown_event() -> None:
    await reconciliation_agent.stop()
    task: asyncio.Task[None] = app.state.task
    task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await task


@app.get("/health", tags=["system"])
async def health() -> dict[str, object]:
    return reconciliation_agent.health.payload()


@app.get("/ready", tags=["system"])
async def ready() -> dict[str, bool]:
    return {"ready": reconciliation_agent.health.ready}
