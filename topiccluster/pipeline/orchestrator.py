#!/usr/bin/env python3
"""
Pipeline Orchestrator

Holds the handler for each pipeline stage and runs stages through the state
manager, so every invocation is serialized by its stage lock and leaves a
state record behind.
"""
import time
from typing import Any, Callable, Dict, List, Optional

import structlog

from topiccluster.config.settings import PIPELINE_STAGES
from topiccluster.models import utcnow
from topiccluster.pipeline.state_manager import StageResult, StateManager

logger = structlog.get_logger(__name__)


class PipelineOrchestrator:
    """Orchestrates the execution of pipeline stages."""

    def __init__(self, state_manager: StateManager):
        """Initialize the orchestrator."""
        self.state_manager = state_manager
        self.handlers: Dict[str, Callable[[], Any]] = {}

    def register(self, stage: str, handler: Callable[[], Any]) -> None:
        if stage not in PIPELINE_STAGES:
            raise ValueError(f"Unknown pipeline stage: {stage}")
        self.handlers[stage] = handler
        logger.debug("stage_handler_registered", stage=stage)

    def run_stage(self, stage: str) -> StageResult:
        """Run a single stage."""
        handler = self.handlers.get(stage)
        if handler is None:
            raise ValueError(f"No handler registered for stage: {stage}")

        logger.info("running_stage", stage=stage)
        start_time = time.time()

        result = self.state_manager.run_stage(stage, handler)

        logger.info("stage_finished",
                   stage=stage,
                   success=result.success,
                   ran=result.ran,
                   elapsed_seconds=round(time.time() - start_time, 2))
        return result

    def run_pipeline(self, stages: Optional[List[str]] = None) -> Dict:
        """Run registered stages in canonical order, or the given subset."""
        if stages is None:
            stages = [stage for stage in PIPELINE_STAGES if stage in self.handlers]

        results = {}
        start_time = time.time()

        logger.info("pipeline_started", stages=stages)

        for stage in stages:
            if stage not in self.handlers:
                logger.warning("unknown_stage", stage=stage)
                continue
            results[stage] = self.run_stage(stage).to_dict()

        elapsed = time.time() - start_time
        failed = [stage for stage, result in results.items() if not result['success']]
        logger.info("pipeline_completed",
                   elapsed_seconds=elapsed,
                   stages_run=len(results),
                   failed=failed)

        return {
            'status': 'completed' if not failed else 'completed_with_errors',
            'elapsed_seconds': elapsed,
            'stages': results,
            'timestamp': utcnow().isoformat()
        }

    def get_status(self) -> Dict:
        """Get the persisted state and lock presence of every stage."""
        status = {}
        for stage in PIPELINE_STAGES:
            state = self.state_manager.get_state(stage).to_dict()
            lease = self.state_manager.get_lease(stage)
            state['registered'] = stage in self.handlers
            state['locked'] = lease is not None
            state['locked_at'] = lease.acquired_at.isoformat() if lease else None
            status[stage] = state
        return status
