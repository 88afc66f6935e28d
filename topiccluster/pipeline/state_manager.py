"""
Stage State Manager

Lease-based mutual exclusion plus a persisted state machine per pipeline
stage: idle -> running -> completed | failed. A stage only enters `running`
while its lease is held.

Lease records are only ever written with the backend's conditional
primitives: a free lock is taken with create-if-absent, an expired lease is
replaced with compare-and-swap against exactly the record that was read, and
release deletes only the caller's own lease. Two concurrent callers can
therefore never both believe they hold the lock.
"""
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterator, Optional

import structlog

from topiccluster.config.settings import PIPELINE_STAGES, settings
from topiccluster.models import StageLease, StageState, utcnow
from topiccluster.storage.backend import StorageBackend, StorageError


logger = structlog.get_logger(__name__)

STATE_PREFIX = 'pipeline-state'


def state_path(stage: str) -> str:
    return f"{STATE_PREFIX}/{stage}.json"


def lock_path(stage: str) -> str:
    return f"{STATE_PREFIX}/locks/{stage}.json"


@dataclass
class StageResult:
    """Outcome of one stage invocation."""

    stage: str
    success: bool
    ran: bool
    result: Any = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'stage': self.stage,
            'success': self.success,
            'ran': self.ran,
            'result': self.result,
            'error': self.error,
        }


class StateManager:
    """Coordinates stage locks and stage state records."""

    def __init__(self, storage: StorageBackend, lock_timeout: Optional[timedelta] = None,
                 clock: Callable[[], datetime] = utcnow):
        self.storage = storage
        if lock_timeout is None:
            minutes = settings.app_config.get('pipeline', {}).get('lock_timeout_minutes', 15)
            lock_timeout = timedelta(minutes=minutes)
        self.lock_timeout = lock_timeout
        self.clock = clock

    def _check_stage(self, stage: str) -> None:
        if stage not in PIPELINE_STAGES:
            raise ValueError(f"Unknown pipeline stage: {stage}")

    # -- state -------------------------------------------------------------

    def get_state(self, stage: str) -> StageState:
        self._check_stage(stage)
        data = self.storage.read(state_path(stage))
        return StageState.from_dict(data) if data else StageState(stage=stage)

    def update_state(self, stage: str, **changes) -> StageState:
        state = self.get_state(stage)
        for key, value in changes.items():
            if not hasattr(state, key):
                raise AttributeError(f"StageState has no field {key!r}")
            setattr(state, key, value)
        self.storage.write(state_path(stage), state.to_dict())
        return state

    def mark_running(self, stage: str) -> StageState:
        return self.update_state(stage, status='running', last_run_at=self.clock())

    def mark_completed(self, stage: str) -> StageState:
        return self.update_state(stage, status='completed',
                                 last_completed_at=self.clock(), error=None)

    def mark_failed(self, stage: str, error: str) -> StageState:
        return self.update_state(stage, status='failed', error=error)

    # -- locking -----------------------------------------------------------

    def get_lease(self, stage: str) -> Optional[StageLease]:
        data = self.storage.read(lock_path(stage))
        return StageLease.from_dict(data) if data else None

    def acquire_lock(self, stage: str) -> Optional[str]:
        """Take the stage lock; returns the lease id, or None while another holder's lease is live."""
        self._check_stage(stage)
        path = lock_path(stage)
        now = self.clock()
        lease = StageLease(lease_id=uuid.uuid4().hex, acquired_at=now)

        existing = self.storage.read(path)
        if existing is None:
            if self.storage.create(path, lease.to_dict()):
                logger.info("stage_lock_acquired", stage=stage, lease_id=lease.lease_id)
                return lease.lease_id
            logger.info("stage_lock_lost_race", stage=stage)
            return None

        held = StageLease.from_dict(existing)
        lock_age = now - held.acquired_at
        if lock_age < self.lock_timeout:
            logger.info("stage_locked",
                       stage=stage,
                       locked_by=held.lease_id,
                       age_seconds=round(lock_age.total_seconds()))
            return None

        logger.warning("stale_stage_lock_breaking",
                      stage=stage,
                      locked_by=held.lease_id,
                      age_seconds=round(lock_age.total_seconds()))
        if self.storage.compare_and_swap(path, existing, lease.to_dict()):
            logger.info("stage_lock_acquired", stage=stage, lease_id=lease.lease_id)
            return lease.lease_id

        logger.info("stage_lock_lost_race", stage=stage)
        return None

    def release_lock(self, stage: str, lease_id: str) -> bool:
        """Release the lock if `lease_id` still holds it; anything else is a no-op."""
        path = lock_path(stage)
        existing = self.storage.read(path)
        if not existing or existing.get('lease_id') != lease_id:
            logger.debug("stage_lock_release_skipped", stage=stage, lease_id=lease_id)
            return False

        released = self.storage.compare_and_delete(path, existing)
        if released:
            logger.info("stage_lock_released", stage=stage, lease_id=lease_id)
        return released

    @contextmanager
    def lock(self, stage: str) -> Iterator[Optional[str]]:
        """Hold the stage lock for a block; yields None when it could not be taken."""
        lease_id = self.acquire_lock(stage)
        try:
            yield lease_id
        finally:
            if lease_id:
                self.release_lock(stage, lease_id)

    # -- execution ---------------------------------------------------------

    def run_stage(self, stage: str, handler: Callable[[], Any]) -> StageResult:
        """Run a stage handler under its lock, recording running/completed/failed."""
        with self.lock(stage) as lease_id:
            if not lease_id:
                return StageResult(stage=stage, success=False, ran=False,
                                   error=f"Stage {stage} is already running")

            # State writes share the handler's failure path
            try:
                self.mark_running(stage)
                logger.info("stage_started", stage=stage)
                result = handler()
                self.mark_completed(stage)
            except Exception as e:
                message = str(e) or e.__class__.__name__
                logger.error("stage_failed", stage=stage, error=message, exc_info=True)
                try:
                    self.mark_failed(stage, message)
                except StorageError as write_error:
                    logger.error("stage_state_write_failed", stage=stage, error=str(write_error))
                return StageResult(stage=stage, success=False, ran=True, error=message)

            logger.info("stage_completed", stage=stage)
            return StageResult(stage=stage, success=True, ran=True, result=result)
