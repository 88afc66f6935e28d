"""Tests for the JSON-file record store."""
import threading

import pytest

from topiccluster.storage.backend import StorageError
from topiccluster.storage.local_storage import LocalStorage


def test_write_then_read(storage):
    storage.write('clusters/c1/cluster.json', {'id': 'c1', 'article_ids': ['a']})
    assert storage.read('clusters/c1/cluster.json') == {'id': 'c1', 'article_ids': ['a']}


def test_read_missing_is_none(storage):
    assert storage.read('nothing/here.json') is None


def test_write_replaces(storage):
    storage.write('a.json', {'v': 1})
    storage.write('a.json', {'v': 2})
    assert storage.read('a.json') == {'v': 2}


def test_list_by_prefix(storage):
    storage.write('clusters/c1/cluster.json', {})
    storage.write('clusters/c2/cluster.json', {})
    storage.write('clusters/centroids.json', {})
    storage.write('items/i1.json', {})

    assert storage.list('clusters/') == [
        'clusters/c1/cluster.json',
        'clusters/c2/cluster.json',
        'clusters/centroids.json',
    ]
    assert storage.list('clusters/c1') == ['clusters/c1/cluster.json']
    assert storage.list('missing/') == []


def test_list_skips_lock_files(storage):
    storage.create('pipeline-state/locks/cluster.json', {'lease_id': 'x'})
    assert storage.list('') == ['pipeline-state/locks/cluster.json']


def test_delete_is_idempotent(storage):
    storage.write('a.json', {'v': 1})
    storage.delete('a.json')
    storage.delete('a.json')
    assert storage.read('a.json') is None


def test_create_only_when_absent(storage):
    assert storage.create('lock.json', {'owner': 'a'}) is True
    assert storage.create('lock.json', {'owner': 'b'}) is False
    assert storage.read('lock.json') == {'owner': 'a'}


def test_compare_and_swap(storage):
    storage.write('lock.json', {'owner': 'a'})

    assert storage.compare_and_swap('lock.json', {'owner': 'b'}, {'owner': 'c'}) is False
    assert storage.compare_and_swap('lock.json', {'owner': 'a'}, {'owner': 'c'}) is True
    assert storage.read('lock.json') == {'owner': 'c'}
    assert storage.compare_and_swap('absent.json', {'owner': 'a'}, {'owner': 'c'}) is False


def test_compare_and_delete(storage):
    storage.write('lock.json', {'owner': 'a'})

    assert storage.compare_and_delete('lock.json', {'owner': 'b'}) is False
    assert storage.compare_and_delete('lock.json', {'owner': 'a'}) is True
    assert storage.read('lock.json') is None
    assert storage.compare_and_delete('lock.json', {'owner': 'a'}) is False


def test_concurrent_create_has_one_winner(storage):
    outcomes = []
    barrier = threading.Barrier(8)

    def contend(owner):
        barrier.wait()
        outcomes.append(storage.create('race.json', {'owner': owner}))

    threads = [threading.Thread(target=contend, args=(n,)) for n in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert outcomes.count(True) == 1


@pytest.mark.parametrize('path', ['../escape.json', 'a/./b.json', '.locks/x.json', ''])
def test_invalid_paths_are_rejected(storage, path):
    with pytest.raises(StorageError):
        storage.write(path, {})


def test_corrupt_record_raises(tmp_path):
    store = LocalStorage(str(tmp_path))
    (tmp_path / 'bad.json').write_text('{not json')
    with pytest.raises(StorageError):
        store.read('bad.json')
