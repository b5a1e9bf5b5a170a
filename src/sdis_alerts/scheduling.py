"""Periodic execution of mailbox scans and operation expiry sweeps."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from .classifiers.expiry import ExpirySweeper
from .core.config import PollingSettings
from .ingestion.poller import MailPoller

LOGGER = logging.getLogger(__name__)

POLL_JOB_ID = "mailbox-scan"
SWEEP_JOB_ID = "operation-expiry"


class AlertScheduler:
    """Run the mailbox poller and the expiry sweeper on fixed intervals.

    Jobs are coroutines executed on the running event loop, so every history
    mutation happens on that loop. :meth:`start` must be called from a
    coroutine or while the loop is running.
    """

    def __init__(
        self,
        poller: MailPoller,
        sweeper: ExpirySweeper,
        settings: PollingSettings,
    ) -> None:
        self._poller = poller
        self._sweeper = sweeper
        self._settings = settings
        self._scheduler: AsyncIOScheduler | None = None

    @property
    def running(self) -> bool:
        """``True`` between :meth:`start` and :meth:`shutdown`."""
        return self._scheduler is not None and self._scheduler.running

    def start(self) -> None:
        """Register both jobs and start ticking."""
        if self.running:
            return
        scheduler = AsyncIOScheduler()
        first_scan = datetime.now() + timedelta(
            seconds=self._settings.initial_delay_seconds
        )
        scheduler.add_job(
            self._scan_job,
            trigger=IntervalTrigger(seconds=self._settings.interval_seconds),
            id=POLL_JOB_ID,
            replace_existing=True,
            next_run_time=first_scan,
            max_instances=1,
            coalesce=True,
        )
        scheduler.add_job(
            self._sweep_job,
            trigger=IntervalTrigger(seconds=self._settings.sweep_interval_seconds),
            id=SWEEP_JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        scheduler.start()
        self._scheduler = scheduler
        LOGGER.info(
            "Scheduler started: scan every %ss (first at %s), sweep every %ss",
            self._settings.interval_seconds,
            first_scan.isoformat(timespec="seconds"),
            self._settings.sweep_interval_seconds,
        )

    def shutdown(self) -> None:
        """Stop ticking; a scan already in progress finishes on its own."""
        if self._scheduler is None:
            return
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        self._scheduler = None
        LOGGER.info("Scheduler stopped")

    async def _scan_job(self) -> None:
        try:
            report = await self._poller.run_cycle()
        except Exception as exc:  # pylint: disable=broad-except
            LOGGER.exception("Scheduled mailbox scan failed: %s", exc)
            return
        if report.error:
            LOGGER.warning("Scheduled mailbox scan reported: %s", report.error)

    async def _sweep_job(self) -> None:
        try:
            self._sweeper.sweep()
        except Exception as exc:  # pylint: disable=broad-except
            LOGGER.exception("Scheduled expiry sweep failed: %s", exc)


__all__ = ["AlertScheduler", "POLL_JOB_ID", "SWEEP_JOB_ID"]
