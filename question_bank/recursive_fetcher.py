# question_bank/recursive_fetcher.py
# Created: 2026-10-07
# Purpose: Drive fetch -> parse -> save batches until a session target is reached

"""
Recursive Fetcher

Repeats fetch_batch() + store.save() until `target_count` NEW questions have
been saved in this session, the consecutive-failure budget runs out, or stop()
is called.

    IDLE -> RUNNING -> COMPLETED | STOPPED | FAILED

A failure tick is any of:
    - fetch_batch raised or returned nothing
    - store.save raised (e.g. StorageError)
    - a batch saved zero new questions (everything was a duplicate)

Any successful save resets the consecutive-failure counter before the
zero-saved rule is applied, so a batch of pure duplicates counts as exactly
one tick.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from question_bank.config import FetchConfig
from question_bank.question_models import MIXED_DIFFICULTY, Question
from question_bank.question_store import IngestionStore


logger = logging.getLogger(__name__)

FetchBatch = Callable[[str, int, str], List[Question]]
ProgressCallback = Callable[[Dict[str, Any]], None]


# ============================================================================
# Exceptions
# ============================================================================

class FetchSessionError(Exception):
    """A session was rejected before it started."""
    pass


class InvalidSessionConfig(FetchSessionError, ValueError):
    """Unknown topic, or target count or batch size out of bounds."""
    pass


class SessionAlreadyRunning(FetchSessionError, RuntimeError):
    """start() called while this fetcher is RUNNING."""
    pass


# ============================================================================
# State / Stats
# ============================================================================

class FetchState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    STOPPED = "stopped"
    FAILED = "failed"


@dataclass
class FetchStats:
    """Cumulative counters for the current session."""

    batches_completed: int = 0
    total_fetched: int = 0
    total_saved: int = 0
    total_duplicates: int = 0
    consecutive_failures: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "batchesCompleted": self.batches_completed,
            "totalFetched": self.total_fetched,
            "totalSaved": self.total_saved,
            "totalDuplicates": self.total_duplicates,
            "consecutiveFailures": self.consecutive_failures,
        }


@dataclass
class FinalStats:
    """What start() returns, whatever the terminal state."""

    success: bool
    final_saved: int
    target_count: int
    progress_percent: int
    duration_minutes: float
    state: FetchState
    stats: FetchStats = field(default_factory=FetchStats)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "finalSaved": self.final_saved,
            "targetCount": self.target_count,
            "progressPercent": self.progress_percent,
            "durationMinutes": self.duration_minutes,
            "state": self.state.value,
            "stats": self.stats.to_dict(),
        }


def _percent(current: int, target: int) -> int:
    return round(current / target * 100) if target else 0


# ============================================================================
# Controller
# ============================================================================

class RecursiveFetcher:
    """
    Batch fetch controller.

    One session at a time per instance. Delays go through the injected
    `sleep` and durations through `clock`, both in seconds.
    """

    def __init__(
        self,
        fetch_batch: FetchBatch,
        store: IngestionStore,
        config: Optional[FetchConfig] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.fetch_batch = fetch_batch
        self.store = store
        self.config = config or FetchConfig()
        self.sleep = sleep
        self.clock = clock

        self.state = FetchState.IDLE
        self.stats = FetchStats()
        self.fetched: List[Question] = []
        self._should_stop = False
        self._lock = threading.Lock()
        self._start_time: Optional[float] = None

    @property
    def is_running(self) -> bool:
        return self.state is FetchState.RUNNING

    def _validate(self, topic: str, target_count: int, batch_size: int) -> None:
        try:
            self.store.validate_topic(topic)
        except ValueError as e:
            raise InvalidSessionConfig(str(e)) from e
        if target_count < 1:
            raise InvalidSessionConfig(f"Target count must be at least 1, got {target_count}")
        if target_count > self.config.max_total_questions:
            raise InvalidSessionConfig(
                f"Target count {target_count} exceeds maximum allowed "
                f"({self.config.max_total_questions})"
            )
        if batch_size not in self.config.batch_sizes:
            raise InvalidSessionConfig(
                f"Invalid batch size {batch_size}. Must be one of: "
                f"{', '.join(str(s) for s in self.config.batch_sizes)}"
            )

    def start(
        self,
        topic: str,
        target_count: int,
        difficulty: str = MIXED_DIFFICULTY,
        batch_size: Optional[int] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> FinalStats:
        """
        Run a session until *target_count* new questions are saved.

        Raises:
            InvalidSessionConfig: unknown topic, or target or batch size out of bounds
            SessionAlreadyRunning: a session is in flight on this instance
        """
        if batch_size is None:
            batch_size = self.config.default_batch_size

        if not self._lock.acquire(blocking=False):
            raise SessionAlreadyRunning("Recursive fetching is already running")

        try:
            self._validate(topic, target_count, batch_size)

            self.state = FetchState.RUNNING
            self.stats = FetchStats()
            self.fetched = []
            self._should_stop = False
            self._start_time = self.clock()

            logger.info(f"Starting recursive fetching for {topic}")
            logger.info(f"Target: store {target_count} new questions | Batch size: {batch_size}")

            session_saved = self._run(topic, target_count, difficulty, batch_size, on_progress)

            if session_saved >= target_count:
                self.state = FetchState.COMPLETED
            elif self._should_stop:
                self.state = FetchState.STOPPED
                logger.info("Recursive fetching stopped by user")
            else:
                self.state = FetchState.FAILED

            return self._final_stats(session_saved, target_count)
        finally:
            self._lock.release()

    def _failure_tick(self, reason: str) -> bool:
        """Count one failure; True when the budget is exhausted."""
        self.stats.consecutive_failures += 1
        if self.stats.consecutive_failures >= self.config.max_consecutive_failures:
            logger.error(
                f"Stopping due to {self.config.max_consecutive_failures} "
                f"consecutive failures ({reason})"
            )
            return True
        logger.warning(
            f"{reason} ({self.stats.consecutive_failures}/"
            f"{self.config.max_consecutive_failures})"
        )
        return False

    def _run(
        self,
        topic: str,
        target_count: int,
        difficulty: str,
        batch_size: int,
        on_progress: Optional[ProgressCallback],
    ) -> int:
        session_saved = 0
        last_progress: Optional[float] = None
        retry_delay = self.config.retry_delay_ms / 1000
        batch_delay = self.config.delay_between_batches_ms / 1000
        progress_interval = self.config.progress_update_interval_ms / 1000

        while not self._should_stop and session_saved < target_count:
            batch = min(batch_size, target_count - session_saved)
            logger.info(f"Fetching batch {self.stats.batches_completed + 1} ({batch} questions)...")

            try:
                questions = self.fetch_batch(topic, batch, difficulty)
            except Exception as e:
                logger.error(f"Error fetching batch: {e}")
                questions = []

            if not questions:
                if self._failure_tick("No questions returned from API"):
                    break
                self.sleep(retry_delay)
                continue

            self.fetched.extend(questions)

            try:
                result = self.store.save(topic, questions)
            except Exception as e:
                logger.error(f"Error saving batch: {e}")
                if self._failure_tick("Storage failure"):
                    break
                self.sleep(retry_delay)
                continue

            self.stats.total_fetched += len(questions)
            self.stats.total_saved += result.saved
            self.stats.total_duplicates += result.duplicates
            self.stats.batches_completed += 1
            self.stats.consecutive_failures = 0
            session_saved += result.saved

            logger.info(
                f"Saved: {result.saved} | Duplicates: {result.duplicates} | "
                f"Session saved: {session_saved}/{target_count}"
            )

            now = self.clock()
            if on_progress and (last_progress is None or now - last_progress >= progress_interval):
                on_progress({
                    "current": session_saved,
                    "target": target_count,
                    "progressPercent": _percent(session_saved, target_count),
                    "stats": self.stats.to_dict(),
                })
                last_progress = now

            if result.saved == 0 and self._failure_tick("No new questions saved"):
                break

            if not self._should_stop and session_saved < target_count:
                logger.debug(f"Waiting {batch_delay}s before next batch")
                self.sleep(batch_delay)

        return session_saved

    def _final_stats(self, session_saved: int, target_count: int) -> FinalStats:
        duration = self.clock() - (self._start_time or self.clock())
        return FinalStats(
            success=self.state is FetchState.COMPLETED,
            final_saved=session_saved,
            target_count=target_count,
            progress_percent=_percent(session_saved, target_count),
            duration_minutes=round(duration / 60, 2),
            state=self.state,
            stats=FetchStats(**asdict(self.stats)),
        )

    def stop(self) -> None:
        """Ask the running session to stop at the next batch boundary."""
        if self.is_running:
            self._should_stop = True
            logger.info("Stopping recursive fetching...")

    def status(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "is_running": self.is_running,
            "stats": self.stats.to_dict(),
        }


__all__ = [
    "FetchSessionError",
    "InvalidSessionConfig",
    "SessionAlreadyRunning",
    "FetchState",
    "FetchStats",
    "FinalStats",
    "RecursiveFetcher",
]
