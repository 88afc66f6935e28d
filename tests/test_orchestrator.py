"""Tests for running registered stages in order."""
from datetime import timedelta

import pytest

from topiccluster.models import parse_datetime
from topiccluster.pipeline.orchestrator import PipelineOrchestrator
from topiccluster.pipeline.state_manager import StateManager


@pytest.fixture
def orchestrator(storage):
    return PipelineOrchestrator(StateManager(storage, lock_timeout=timedelta(minutes=15)))


def test_register_rejects_unknown_stage(orchestrator):
    with pytest.raises(ValueError):
        orchestrator.register('publish', lambda: None)


def test_run_stage_requires_handler(orchestrator):
    with pytest.raises(ValueError):
        orchestrator.run_stage('cluster')


def test_pipeline_runs_in_canonical_order(orchestrator):
    calls = []
    orchestrator.register('analyze', lambda: calls.append('analyze'))
    orchestrator.register('cluster', lambda: calls.append('cluster'))

    report = orchestrator.run_pipeline()

    assert calls == ['cluster', 'analyze']
    assert report['status'] == 'completed'
    assert list(report['stages']) == ['cluster', 'analyze']


def test_failed_stage_does_not_stop_the_pipeline(orchestrator):
    calls = []

    def fail():
        raise RuntimeError('no model')

    orchestrator.register('cluster', fail)
    orchestrator.register('analyze', lambda: calls.append('analyze'))

    report = orchestrator.run_pipeline()

    assert report['status'] == 'completed_with_errors'
    assert report['stages']['cluster']['error'] == 'no model'
    assert calls == ['analyze']


def test_unregistered_stages_are_skipped(orchestrator):
    orchestrator.register('cluster', lambda: 'ok')
    report = orchestrator.run_pipeline(['cluster', 'sitegen'])
    assert list(report['stages']) == ['cluster']
    assert report['stages']['cluster']['result'] == 'ok'


def test_status_reports_state_and_locks(orchestrator):
    orchestrator.register('cluster', lambda: None)
    orchestrator.run_stage('cluster')
    orchestrator.state_manager.acquire_lock('analyze')

    status = orchestrator.get_status()

    assert status['cluster']['status'] == 'completed'
    assert status['cluster']['registered'] is True
    assert status['cluster']['locked'] is False
    assert status['analyze']['locked'] is True
    assert status['analyze']['locked_at'] is not None
    assert status['ingest']['status'] == 'idle'


def test_report_timestamp_is_utc(orchestrator):
    orchestrator.register('cluster', lambda: None)
    report = orchestrator.run_pipeline()
    assert parse_datetime(report['timestamp']).utcoffset() == timedelta(0)
    assert report['timestamp'].endswith('+00:00')
