"""End-to-end tests of one clustering cycle on local storage."""
from datetime import timedelta

import pytest

from topiccluster.clustering.centroid_store import CentroidStore
from topiccluster.clustering.cluster_manager import ClusterManager
from topiccluster.clustering.cluster_scheduler import ClusterScheduler
from topiccluster.items import ItemRepository
from topiccluster.models import Cluster, Item, utcnow


@pytest.fixture
def scheduler(storage, config):
    return ClusterScheduler(storage, config)


@pytest.fixture
def repository(storage):
    return ItemRepository(storage)


def save_items(repository, topic_vector, specs):
    for item_id, source, topic, member in specs:
        repository.save_item(Item(id=item_id, source=source, title=f"About {item_id}",
                                  embedding=topic_vector(topic, member)))


def test_cycle_creates_clusters_and_orphans(storage, config, scheduler, repository, topic_vector):
    save_items(repository, topic_vector, [
        ('i1', 'wire', 0, 3), ('i2', 'blog', 0, 4), ('i3', 'wire', 0, 5), ('i4', 'wire', 1, 6),
    ])

    stats = scheduler.run_once()

    assert stats['items_processed'] == 4
    assert stats['clusters_created'] == 1
    assert stats['orphans'] == 1
    clusters = ClusterManager(storage, config).get_existing_clusters()
    assert len(clusters) == 1
    assert clusters[0].article_ids == ['i1', 'i2', 'i3']
    assert clusters[0].id in CentroidStore(storage).load()


def test_second_cycle_only_sees_unclustered_items(storage, config, scheduler, repository,
                                                  topic_vector):
    save_items(repository, topic_vector, [
        ('i1', 'wire', 0, 3), ('i2', 'blog', 0, 4), ('i3', 'wire', 0, 5),
    ])
    scheduler.run_once()
    save_items(repository, topic_vector, [('i5', 'news', 0, 6)])

    stats = ClusterScheduler(storage, config).run_once()

    assert stats['items_processed'] == 1
    assert stats['clusters_updated'] == 1
    cluster = ClusterManager(storage, config).get_existing_clusters()[0]
    assert cluster.article_ids == ['i1', 'i2', 'i3', 'i5']
    assert cluster.source_count == 3


def test_cycle_merges_near_duplicate_clusters(storage, config, scheduler, topic_vector):
    manager = ClusterManager(storage, config)
    manager.store_cluster(Cluster(id='c1', article_ids=['a'], article_count=1, status='active'))
    manager.store_cluster(Cluster(id='c2', article_ids=['b'], article_count=1, status='active'))
    centroids = CentroidStore(storage)
    centroids.set('c1', topic_vector(0, 3))
    centroids.set('c2', topic_vector(0, 4))
    centroids.save()

    stats = scheduler.run_once()

    assert stats['clusters_merged'] == 1
    assert [c.id for c in manager.get_existing_clusters()] == ['c1']
    assert CentroidStore(storage).load().ids() == ['c1']


def test_cycle_applies_staleness(storage, config, scheduler, topic_vector):
    manager = ClusterManager(storage, config)
    manager.store_cluster(Cluster(id='old', status='active',
                                  updated_at=utcnow() - timedelta(days=9)))
    manager.store_cluster(Cluster(id='ancient', status='stale',
                                  updated_at=utcnow() - timedelta(days=45)))
    centroids = CentroidStore(storage)
    centroids.set('old', topic_vector(0, 3))
    centroids.set('ancient', topic_vector(1, 4))
    centroids.save()

    stats = scheduler.run_once()

    assert stats['clusters_staled'] == 1
    assert stats['clusters_archived'] == 1
    assert manager.get_cluster('old').status == 'stale'
    assert manager.get_cluster('ancient').status == 'archived'
    assert CentroidStore(storage).load().ids() == ['old']


def test_explicit_items_are_clustered(storage, config, scheduler, topic_vector):
    items = [Item(id=f"x{n}", source='wire', embedding=topic_vector(2, n + 3))
             for n in range(3)]

    stats = scheduler.run_once(items)

    assert stats['clusters_created'] == 1
    cluster = ClusterManager(storage, config).get_existing_clusters()[0]
    assert cluster.article_ids == ['x0', 'x1', 'x2']
    assert storage.list('items/') == []
