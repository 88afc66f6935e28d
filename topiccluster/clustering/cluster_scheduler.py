#!/usr/bin/env python3
"""
Cluster Scheduler

Runs the cluster stage: loads items that are not yet in a cluster, embeds
the ones without a vector, assigns them, merges near-duplicate clusters and
applies the staleness policy.
"""
import time
from typing import Dict, List, Optional

import structlog

from topiccluster.clustering.centroid_store import CentroidStore
from topiccluster.clustering.cluster_manager import ClusterManager
from topiccluster.clustering.cluster_merger import ClusterMerger
from topiccluster.clustering.embedder import Embedder
from topiccluster.clustering.lifecycle import ClusterLifecycle
from topiccluster.clustering.semantic_clusterer import SemanticClusterer
from topiccluster.config.settings import settings
from topiccluster.items import ItemRepository
from topiccluster.models import Item
from topiccluster.storage.backend import StorageBackend


logger = structlog.get_logger(__name__)


class ClusterScheduler:
    """Runs one clustering cycle against the shared record store."""

    def __init__(self, storage: StorageBackend, config: Optional[Dict] = None,
                 embedder: Optional[Embedder] = None):
        """Initialize the scheduler."""
        self.storage = storage
        self.config = config or settings.app_config
        self.clustering_config = self.config.get('clustering', {})

        self.time_window_hours = self.clustering_config.get('time_window_hours', 72)

        self.items = ItemRepository(storage, self.clustering_config.get('max_items_per_day', 500))
        self.cluster_manager = ClusterManager(storage, self.config)
        self.clusterer = SemanticClusterer(storage, self.config, self.cluster_manager)
        self.merger = ClusterMerger(storage, self.config, self.cluster_manager)
        self.lifecycle = ClusterLifecycle(self.config)
        self.embedder = embedder or Embedder(self.config)

    def run_once(self, items: Optional[List[Item]] = None) -> dict:
        """Run a single clustering cycle."""
        logger.info("starting_clustering_cycle")
        start_time = time.time()

        stored_items = self.items.load_items(self.time_window_hours)
        lookup = ItemRepository.as_lookup(stored_items)

        clusters = self.cluster_manager.get_existing_clusters()
        if items is None:
            items = self.items.load_unclustered(
                self.cluster_manager.assigned_item_ids(clusters),
                time_window_hours=self.time_window_hours,
                items=stored_items,
            )
        else:
            lookup.update(ItemRepository.as_lookup(items))

        stats = {
            'items_processed': len(items),
            'clusters_created': 0,
            'clusters_updated': 0,
            'clusters_merged': 0,
            'orphans': 0,
            'clusters_staled': 0,
            'clusters_archived': 0
        }

        centroids = CentroidStore(self.storage, self.clusterer.centroid_policy).load()

        if items:
            embeddings = self.embedder.embed_items(items)
            assignment = self.clusterer.assign(embeddings, lookup, clusters, centroids)
            clusters.extend(assignment.created)
            stats['clusters_created'] = len(assignment.created)
            stats['clusters_updated'] = len(assignment.updated)
            stats['orphans'] = len(assignment.orphans)
        else:
            logger.info("no_items_to_cluster")

        merge = self.merger.merge(clusters, centroids, lookup)
        stats['clusters_merged'] = len(merge.merged)

        changed = self.lifecycle.apply(merge.clusters)
        for cluster in changed:
            if cluster.status == 'archived':
                centroids.delete(cluster.id)
                stats['clusters_archived'] += 1
            else:
                stats['clusters_staled'] += 1
            self.cluster_manager.store_cluster(cluster)
        if changed:
            centroids.save()

        stats['processing_time_seconds'] = round(time.time() - start_time, 2)
        logger.info("clustering_cycle_completed", **stats)
        return stats
