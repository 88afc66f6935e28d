#!/usr/bin/env python3
"""
Topic Cluster Daemon

Runs the configured pipeline stages once or on a fixed interval. Every stage
goes through its stage lock, so a daemon and a manually triggered run never
overlap on the same stage.

Usage:
    python -m topiccluster.daemon [--debug] [--once] [--stage STAGE]

Options:
    --debug     Enable debug mode with verbose logging
    --once      Run the stages once and exit
    --stage     Run only this stage (implies --once)
"""
import json
import os
import signal
import sys
import time
import traceback
from datetime import timedelta

import structlog

from topiccluster.clustering.cluster_scheduler import ClusterScheduler
from topiccluster.config.settings import PIPELINE_STAGES, settings
from topiccluster.logging_config import setup_logging
from topiccluster.models import utcnow
from topiccluster.pipeline.orchestrator import PipelineOrchestrator
from topiccluster.pipeline.state_manager import StateManager
from topiccluster.storage.factory import get_storage


class TopicClusterDaemon:
    """Background runner for the pipeline stages."""

    def __init__(self, debug=False):
        """Initialize the daemon."""
        self.debug = debug
        self.running = False
        self.cycle_count = 0

        setup_logging(debug=debug)
        self.logger = structlog.get_logger(__name__)

        self.scheduler_config = settings.app_config.get('scheduler', {})
        self.interval_minutes = self.scheduler_config.get('interval_minutes', 30)
        self.stages = self.scheduler_config.get('stages', ['cluster'])
        self.error_backoff_minutes = self.scheduler_config.get('error_backoff_minutes', 5)

        storage = get_storage()
        self.state_manager = StateManager(storage)
        self.orchestrator = PipelineOrchestrator(self.state_manager)

        cluster_scheduler = ClusterScheduler(storage)
        self.orchestrator.register('cluster', cluster_scheduler.run_once)

        # Register signal handlers for graceful shutdown
        signal.signal(signal.SIGINT, self.shutdown_handler)
        signal.signal(signal.SIGTERM, self.shutdown_handler)

        self.logger.info("daemon_initialized", debug=debug, pid=os.getpid())

    def shutdown_handler(self, signum, frame):
        """Handle shutdown signals gracefully."""
        self.logger.info("shutdown_signal_received", signal=signum)
        self.running = False

    def run_cycle(self, stages=None):
        """Run the configured stages once; returns the number of failed stages."""
        self.cycle_count += 1
        self.logger.info("pipeline_starting", cycle=self.cycle_count)

        report = self.orchestrator.run_pipeline(stages or self.stages)
        error_count = sum(1 for result in report['stages'].values() if not result['success'])

        self.logger.info("pipeline_cycle_finished",
                        cycle=self.cycle_count,
                        status=report['status'],
                        error_count=error_count)
        return report, error_count

    def run_once(self, stages=None):
        """Run the stages once and exit."""
        self.logger.info("daemon_mode", mode="once")
        report, error_count = self.run_cycle(stages)
        print(json.dumps(report, indent=2, default=str))
        return 1 if error_count > 0 else 0

    def _sleep_while_running(self, minutes):
        """Sleep in one-second slices so a shutdown signal cuts the wait short."""
        deadline = time.monotonic() + minutes * 60
        while self.running and time.monotonic() < deadline:
            time.sleep(1)
        if not self.running:
            self.logger.info("wait_interrupted_by_shutdown")

    def run_continuous(self):
        """Run the stages every `interval_minutes` until a shutdown signal arrives."""
        self.logger.info("daemon_mode", mode="continuous")
        self.running = True
        self.logger.info("continuous_processing_started", interval_minutes=self.interval_minutes)

        while self.running:
            try:
                self.run_cycle()
            except Exception as e:
                # Storage outages surface here; stage handler errors are recorded by run_stage
                self.logger.error("pipeline_cycle_error",
                                error=str(e),
                                traceback=traceback.format_exc())
                self.logger.info("error_backoff", minutes=self.error_backoff_minutes)
                self._sleep_while_running(self.error_backoff_minutes)
                continue

            if not self.running:
                break

            next_run = utcnow() + timedelta(minutes=self.interval_minutes)
            self.logger.info("next_cycle_scheduled",
                           cycle=self.cycle_count,
                           next_run=next_run.isoformat())
            self._sleep_while_running(self.interval_minutes)

        self.logger.info("continuous_processing_stopped", cycles=self.cycle_count)


def main():
    """Main entry point."""
    import argparse

    parser = argparse.ArgumentParser(description='Topic Cluster Pipeline Daemon')
    parser.add_argument('--debug', action='store_true',
                       help='Enable debug mode with verbose logging')
    parser.add_argument('--once', action='store_true',
                       help='Run the configured stages once and exit')
    parser.add_argument('--stage', choices=PIPELINE_STAGES,
                       help='Run only this stage once and exit')
    args = parser.parse_args()

    try:
        daemon = TopicClusterDaemon(debug=args.debug)

        if args.stage:
            return daemon.run_once([args.stage])
        if args.once:
            return daemon.run_once()

        daemon.run_continuous()
        return 0

    except Exception as e:
        # Emergency logging to stderr if structured logging fails
        print(f"FATAL ERROR: {str(e)}", file=sys.stderr)
        traceback.print_exc()
        return 1


if __name__ == '__main__':
    sys.exit(main())
