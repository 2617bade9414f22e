"""
SLA Monitor Module

Periodic background breach checking for open tickets.
"""

import asyncio
import uuid
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional
import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from incident_desk.core.config import settings
from incident_desk.core.database import AsyncSessionLocal
from incident_desk.core.exceptions import MonitorStartupError
from incident_desk.core.logging import pass_id_ctx
from incident_desk.schemas.sla import SlaThresholds
from incident_desk.services.notification_service import NotificationService
from incident_desk.services.sla_repository import SlaRepository
from incident_desk.services.sla_service import SlaService, default_thresholds


logger = logging.getLogger(__name__)


class SlaMonitor:
    """
    Scheduler for SLA breach-check passes.

    Uses asyncio for lightweight background scheduling. Runs a pass every
    15 minutes by default. At most one timer-driven pass runs at a time; a
    tick that fires while a pass is still in flight is skipped.

    The host creates one monitor and owns its lifecycle:

        monitor = SlaMonitor()
        await monitor.start_monitoring()
        ...
        await monitor.stop_monitoring()
    """

    def __init__(
        self,
        session_factory: async_sessionmaker = AsyncSessionLocal,
        interval_seconds: Optional[float] = None,
        thresholds: Optional[SlaThresholds] = None,
        clock: Callable[[], datetime] = datetime.utcnow
    ):
        """
        Initialize the SLA monitor.

        Args:
            session_factory: Creates a database session per pass
            interval_seconds: Time between passes (defaults to SLA_CHECK_INTERVAL_MS)
            thresholds: Starting thresholds, before persisted overrides
            clock: Returns the current naive-UTC time
        """
        self.session_factory = session_factory
        self.interval_seconds = interval_seconds or settings.sla_check_interval_seconds
        self.base_thresholds = thresholds or default_thresholds()
        self.thresholds = self.base_thresholds
        self.clock = clock

        self._running = False
        # Incremented by every stop; checked by a start resuming after its await
        self._generation = 0
        self._timer_task: Optional[asyncio.Task] = None
        self._pass_task: Optional[asyncio.Task] = None
        self._next_run_at: Optional[datetime] = None
        self._last_run: Optional[datetime] = None
        self._run_count = 0
        self._error_count = 0
        self._skipped_ticks = 0

    def _build_service(self, db: AsyncSession, thresholds: Optional[SlaThresholds] = None) -> SlaService:
        return SlaService(
            SlaRepository(db),
            NotificationService(db),
            thresholds=thresholds or self.thresholds,
            clock=self.clock
        )

    # ========================================================================
    # Lifecycle
    # ========================================================================

    async def start_monitoring(self):
        """
        Start periodic breach checking.

        Loads persisted thresholds over the starting thresholds (falling back
        to them) and creates the timer task. Calling this while already running
        does nothing, and a stop issued during the threshold load wins.

        Raises:
            MonitorStartupError: if the timer task cannot be created
        """
        if self._running:
            logger.warning("SLA monitor is already running")
            return

        # Claim the running state before awaiting so a concurrent start is a no-op
        self._running = True
        generation = self._generation

        try:
            async with self.session_factory() as db:
                service = self._build_service(db, thresholds=self.base_thresholds)
                self.thresholds = await service.load_thresholds()
        except Exception as e:
            logger.warning(f"Could not load SLA thresholds, using defaults: {e}")
            self.thresholds = self.base_thresholds

        if not self._running or generation != self._generation:
            logger.info("SLA monitor was stopped while starting")
            return

        try:
            loop = asyncio.get_running_loop()
            self._timer_task = loop.create_task(self._timer_loop())
        except RuntimeError as e:
            self._running = False
            logger.error(f"Failed to start SLA monitor: {e}")
            raise MonitorStartupError("SLA monitor timer could not be created", {"error": str(e)}) from e

        logger.info(
            f"SLA monitor started with interval {self.interval_seconds} seconds "
            f"(warning={self.thresholds.warning_ratio}, critical={self.thresholds.critical_ratio})"
        )

    async def stop_monitoring(self):
        """
        Stop periodic breach checking.

        Cancels the timer only; a pass already in flight runs to completion.
        Calling this while stopped does nothing.
        """
        if not self._running:
            logger.debug("SLA monitor is not running")
            return

        self._running = False
        self._generation += 1
        self._next_run_at = None

        if self._timer_task:
            self._timer_task.cancel()
            try:
                await self._timer_task
            except asyncio.CancelledError:
                pass
            self._timer_task = None

        logger.info("SLA monitor stopped")

    async def wait_for_pass(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for an in-flight pass to finish.

        Returns:
            True if no pass is running afterwards
        """
        task = self._pass_task
        if task is None or task.done():
            return True

        done, _ = await asyncio.wait({task}, timeout=timeout)
        return task in done

    # ========================================================================
    # Timer
    # ========================================================================

    async def _timer_loop(self):
        """
        Fire a tick every interval, scheduled against the loop clock.

        Passes run as separate tasks, so a slow pass never delays the next tick.
        """
        loop = asyncio.get_running_loop()
        next_tick = loop.time() + self.interval_seconds

        while True:
            delay = max(0.0, next_tick - loop.time())
            self._next_run_at = datetime.utcnow() + timedelta(seconds=delay)
            await asyncio.sleep(delay)
            next_tick += self.interval_seconds
            self._on_tick()

    def _on_tick(self):
        if self._pass_task is not None and not self._pass_task.done():
            self._skipped_ticks += 1
            logger.warning(
                "Previous SLA pass still running, skipping tick",
                extra={"skipped_ticks": self._skipped_ticks}
            )
            return

        self._pass_task = asyncio.create_task(self._run_pass())

    async def _run_pass(self):
        token = pass_id_ctx.set(uuid.uuid4().hex[:12])
        try:
            await self.run_breach_check()
        except Exception as e:
            # Already counted; the timer keeps going
            logger.error(f"SLA monitor pass error: {e}")
        finally:
            pass_id_ctx.reset(token)

    # ========================================================================
    # Operations
    # ========================================================================

    async def run_breach_check(self) -> Dict[str, Any]:
        """
        Execute a single breach-check pass.

        Returns:
            Summary of the pass, with 'started_at' and 'duration_seconds' added
        """
        logger.info("Starting SLA breach check...")
        start_time = datetime.utcnow()

        try:
            async with self.session_factory() as db:
                result = await self._build_service(db).run_breach_check()

            result["started_at"] = start_time.isoformat()
            result["duration_seconds"] = (datetime.utcnow() - start_time).total_seconds()

            self._last_run = datetime.utcnow()
            self._run_count += 1

            logger.info(f"SLA breach check finished in {result['duration_seconds']:.2f}s")
            return result

        except Exception as e:
            self._error_count += 1
            logger.error(f"SLA breach check failed: {e}", exc_info=True)
            raise

    async def calculate_sla_target(self, priority: Any, business_hours_only: bool = False) -> datetime:
        """
        Calculate the SLA deadline for a ticket being created now.

        Args:
            priority: Ticket priority (enum or value)
            business_hours_only: Count only weekday business hours

        Returns:
            Deadline timestamp
        """
        async with self.session_factory() as db:
            return await self._build_service(db).calculate_sla_target(priority, business_hours_only)

    # ========================================================================
    # Status
    # ========================================================================

    @property
    def is_running(self) -> bool:
        return self._running

    def get_status(self) -> Dict[str, Any]:
        """
        Get the current status of the monitor.

        Returns:
            Dictionary with monitor status information
        """
        return {
            "running": self._running,
            "interval_seconds": self.interval_seconds,
            "thresholds": self.thresholds.model_dump(),
            "last_run": self._last_run.isoformat() if self._last_run else None,
            "run_count": self._run_count,
            "error_count": self._error_count,
            "skipped_ticks": self._skipped_ticks,
            "pass_in_flight": self._pass_task is not None and not self._pass_task.done(),
            "next_run_in_seconds": self._calculate_next_run_seconds()
        }

    def _calculate_next_run_seconds(self) -> Optional[int]:
        if not self._running or not self._next_run_at:
            return None

        remaining = (self._next_run_at - datetime.utcnow()).total_seconds()
        return int(max(0, remaining))
