"""
Scheduler

Runs a pipeline pass every ``interval_seconds`` of wall-clock time using an
APScheduler AsyncIOScheduler. The scheduler's mutable state lives in an
explicit SchedulerState owned by the caller, so the "is a pass running"
flag can be inspected and tested.

Every pass, scheduled or on demand, goes through ``run_pass`` so a pass
that would overlap a running one is skipped, not queued. Scheduled passes
first run a configuration check and are skipped (logged, not raised) when
a required credential is missing.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..common.errors import ConfigurationError
from .processor import PassSummary, TranscriptPipeline

logger = logging.getLogger("storyforge.pipeline.scheduler")

JOB_ID = "storyforge_auto_process"


@dataclass
class SchedulerState:
    """Mutable scheduler state"""
    active: bool = False
    running: bool = False
    run_count: int = 0
    skipped_overlaps: int = 0
    skipped_unconfigured: int = 0
    last_started_at: Optional[datetime] = None
    last_finished_at: Optional[datetime] = None
    last_summary: Optional[PassSummary] = None
    last_error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "active": self.active,
            "running": self.running,
            "runCount": self.run_count,
            "skippedOverlaps": self.skipped_overlaps,
            "skippedUnconfigured": self.skipped_unconfigured,
            "lastStartedAt": self.last_started_at.isoformat() if self.last_started_at else None,
            "lastFinishedAt": self.last_finished_at.isoformat() if self.last_finished_at else None,
            "lastError": self.last_error,
        }


class Scheduler:
    """
    Periodic pipeline trigger.

    Args:
        pipeline: Pipeline to run
        state: Scheduler state (shared with whoever reports on it)
        interval_seconds: Wall-clock interval between scheduled passes
        page_size: Transcripts fetched per scheduled pass
        preflight: Raises ConfigurationError when a scheduled pass cannot
            run; defaults to ``pipeline.preflight``
    """

    def __init__(
        self,
        pipeline: TranscriptPipeline,
        state: Optional[SchedulerState] = None,
        interval_seconds: float = 120,
        page_size: int = 20,
        preflight: Optional[Callable[[], None]] = None,
    ):
        self.pipeline = pipeline
        self.state = state or SchedulerState()
        self.interval_seconds = interval_seconds
        self.page_size = page_size
        self._preflight = preflight or pipeline.preflight
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._idle = asyncio.Event()
        self._idle.set()

    async def run_pass(
        self,
        page_size: Optional[int] = None,
        webhook_url: Optional[str] = None,
    ) -> Optional[PassSummary]:
        """Run one pass under the shared state.

        Returns None if a pass is already running. Errors from the pass
        are recorded in the state and re-raised.
        """
        if self.state.running:
            self.state.skipped_overlaps += 1
            logger.info("Pass already running, skipping")
            return None

        self.state.running = True
        self.state.last_started_at = datetime.now(timezone.utc)
        self._idle.clear()
        try:
            summary = await self.pipeline.run_pass(page_size or self.page_size, webhook_url)
        except Exception as e:
            self.state.last_error = f"{type(e).__name__}: {e}"
            raise
        finally:
            self.state.running = False
            self.state.run_count += 1
            self.state.last_finished_at = datetime.now(timezone.utc)
            self._idle.set()

        self.state.last_summary = summary
        self.state.last_error = None
        return summary

    async def trigger(self, webhook_url: Optional[str] = None) -> Optional[PassSummary]:
        """Scheduled pass: check configuration, then run. Never raises."""
        try:
            self._preflight()
        except ConfigurationError as e:
            self.state.skipped_unconfigured += 1
            self.state.last_error = f"{type(e).__name__}: {e}"
            logger.warning("Auto-processing skipped: %s", e)
            return None

        logger.info("Auto-processing scan started...")
        try:
            return await self.run_pass(webhook_url=webhook_url)
        except Exception as e:
            logger.error("Auto-processing pass failed: %s", e)
            return None

    @property
    def job(self):
        if self._scheduler is None:
            return None
        return self._scheduler.get_job(JOB_ID)

    def start(self) -> None:
        """Start the interval job on the running event loop"""
        if self.state.active:
            return
        self._scheduler = AsyncIOScheduler(timezone=timezone.utc)
        self._scheduler.add_job(
            self.trigger,
            trigger=IntervalTrigger(seconds=self.interval_seconds),
            id=JOB_ID,
            name="Process new transcripts",
            max_instances=1,
            coalesce=True,
        )
        self._scheduler.start()
        self.state.active = True
        logger.info("Auto-processing enabled: scanning every %ss", self.interval_seconds)

    async def stop(self) -> None:
        """Stop scheduling; a pass in progress runs to completion first"""
        if self._scheduler is None:
            return
        self._scheduler.pause()
        await self._idle.wait()
        self._scheduler.shutdown(wait=False)
        self._scheduler = None
        self.state.active = False
        logger.info("Auto-processing stopped")
