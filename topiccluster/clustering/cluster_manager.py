"""
Cluster Manager Module

Handles cluster storage and derived metadata. Loads non-archived clusters,
persists cluster records, recomputes source statistics and importance, and
decides which clusters are due for (re-)analysis.
"""
from collections import Counter
from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Optional, Set

import structlog

from topiccluster.config.settings import settings
from topiccluster.models import Cluster, Item, utcnow
from topiccluster.storage.backend import StorageBackend


logger = structlog.get_logger(__name__)

CLUSTER_PREFIX = 'clusters/'
CLUSTER_FILE = 'cluster.json'


def cluster_path(cluster_id: str) -> str:
    return f"{CLUSTER_PREFIX}{cluster_id}/{CLUSTER_FILE}"


def calculate_importance(article_count: int, source_count: int) -> int:
    """More articles and more distinct sources mean a more important story."""
    return min(100, round(article_count * 3 + source_count * 10))


def rank_sources(article_ids: Iterable[str], items: Mapping[str, Item]) -> Counter:
    """Source frequencies across members; insertion order follows first appearance."""
    sources = Counter()
    for article_id in article_ids:
        item = items.get(article_id)
        if item is not None and item.source:
            sources[item.source] += 1
    return sources


class ClusterManager:
    """Manages cluster storage and metadata."""

    def __init__(self, storage: StorageBackend, config: Optional[Dict] = None):
        """Initialize the cluster manager."""
        self.storage = storage
        self.clustering_config = (config or settings.app_config).get('clustering', {})

        self.min_cluster_size = self.clustering_config.get('min_cluster_size', 3)
        self.top_sources = self.clustering_config.get('top_sources', 5)

    def refresh_metadata(self, cluster: Cluster, items: Mapping[str, Item]) -> Cluster:
        """Recompute counts, top sources, importance and the new -> active promotion."""
        cluster.article_count = len(cluster.article_ids)

        sources = rank_sources(cluster.article_ids, items)
        cluster.source_count = len(sources)
        # most_common sorts stably, so equal counts keep first-appearance order
        cluster.top_sources = [name for name, _ in sources.most_common(self.top_sources)]
        cluster.importance = calculate_importance(cluster.article_count, cluster.source_count)

        if cluster.status == 'new' and cluster.article_count >= self.min_cluster_size:
            cluster.status = 'active'
            logger.info("cluster_activated", cluster_id=cluster.id, article_count=cluster.article_count)

        return cluster

    def get_cluster(self, cluster_id: str) -> Optional[Cluster]:
        data = self.storage.read(cluster_path(cluster_id))
        return Cluster.from_dict(data) if data else None

    def get_existing_clusters(self) -> List[Cluster]:
        """Fetch every non-archived cluster."""
        clusters = []
        for path in self.storage.list(CLUSTER_PREFIX):
            if not path.endswith(f"/{CLUSTER_FILE}"):
                continue

            data = self.storage.read(path)
            if not data:
                logger.warning("cluster_record_missing", path=path)
                continue

            cluster = Cluster.from_dict(data)
            if cluster.status != 'archived':
                clusters.append(cluster)

        logger.info("loaded_existing_clusters", count=len(clusters))
        return clusters

    def get_active_clusters(self) -> List[Cluster]:
        return [c for c in self.get_existing_clusters() if c.status in ('new', 'active')]

    def get_clusters_needing_analysis(self) -> List[Cluster]:
        return [c for c in self.get_active_clusters() if c.needs_analysis()]

    def assigned_item_ids(self, clusters: Optional[List[Cluster]] = None) -> Set[str]:
        """Article ids already belonging to a non-archived cluster."""
        if clusters is None:
            clusters = self.get_existing_clusters()
        assigned = set()
        for cluster in clusters:
            assigned.update(cluster.article_ids)
        return assigned

    def store_cluster(self, cluster: Cluster) -> None:
        self.storage.write(cluster_path(cluster.id), cluster.to_dict())
        logger.debug("cluster_stored", cluster_id=cluster.id, article_count=cluster.article_count)

    def delete_cluster(self, cluster_id: str) -> None:
        self.storage.delete(cluster_path(cluster_id))
        logger.info("cluster_deleted", cluster_id=cluster_id)

    def mark_analyzed(self, cluster: Cluster, when: Optional[datetime] = None) -> Cluster:
        cluster.last_analyzed_at = when or utcnow()
        self.store_cluster(cluster)
        return cluster
