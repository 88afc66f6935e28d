"""Tests for the daemon's single-cycle mode."""
import pytest

from topiccluster import daemon as daemon_module
from topiccluster.pipeline.state_manager import state_path
from topiccluster.storage.local_storage import LocalStorage


@pytest.fixture
def daemon(tmp_path, monkeypatch):
    storage = LocalStorage(str(tmp_path / 'store'))
    monkeypatch.setattr(daemon_module, 'get_storage', lambda: storage)
    return daemon_module.TopicClusterDaemon()


def test_run_once_on_empty_store(daemon, capsys):
    assert daemon.run_once(['cluster']) == 0
    assert '"status": "completed"' in capsys.readouterr().out
    assert daemon.state_manager.get_state('cluster').status == 'completed'


def test_failed_stage_sets_exit_code(daemon):
    def broken():
        raise RuntimeError('store unreachable')

    daemon.orchestrator.register('cluster', broken)

    assert daemon.run_once(['cluster']) == 1
    record = daemon.state_manager.storage.read(state_path('cluster'))
    assert record['error'] == 'store unreachable'
