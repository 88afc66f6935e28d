#!/usr/bin/env python3
"""
Semantic Clustering Module

Assigns newly embedded items to topic clusters online. Each item joins the
existing cluster whose centroid it is most similar to; items with no close
cluster are grouped with other unassigned items of the same batch and become
a new cluster once the group is large enough.

The pass is greedy and processes items in input order: later items see the
clusters and centroids produced by earlier ones. Re-running with a different
order can produce different clusters, which is accepted.
"""
import uuid
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence, Set, Tuple, Union

import structlog

from topiccluster.clustering.centroid_store import (
    CentroidStore, compute_centroid, get_centroid_policy,
)
from topiccluster.clustering.cluster_manager import ClusterManager
from topiccluster.clustering.similarity import cosine_similarity
from topiccluster.config.settings import settings
from topiccluster.models import Cluster, Item, ItemEmbedding, utcnow
from topiccluster.storage.backend import StorageBackend


# Configure structured logging
logger = structlog.get_logger(__name__)

EmbeddingInput = Union[ItemEmbedding, Tuple[str, Sequence[float]]]


@dataclass
class AssignmentResult:
    updated: List[Cluster] = field(default_factory=list)
    created: List[Cluster] = field(default_factory=list)
    orphans: List[str] = field(default_factory=list)


def _as_item_embedding(entry: EmbeddingInput) -> ItemEmbedding:
    if isinstance(entry, ItemEmbedding):
        return entry
    item_id, vector = entry
    return ItemEmbedding(item_id=str(item_id), embedding=list(vector))


class SemanticClusterer:
    """Performs incremental semantic clustering of embedded items."""

    def __init__(self, storage: StorageBackend, config: Optional[Dict] = None,
                 cluster_manager: Optional[ClusterManager] = None):
        """Initialize the semantic clusterer with configuration."""
        self.storage = storage
        self.config = config or settings.app_config
        self.clustering_config = self.config.get('clustering', {})

        # Clustering parameters
        self.similarity_threshold = self.clustering_config.get('similarity_threshold', 0.72)
        self.min_cluster_size = self.clustering_config.get('min_cluster_size', 3)
        self.centroid_policy = get_centroid_policy(
            self.clustering_config.get('centroid_policy', 'running_average')
        )

        self.cluster_manager = cluster_manager or ClusterManager(storage, self.config)

        # Statistics for the most recent assign() call
        self.reset_stats()

    def reset_stats(self) -> None:
        self.stats = {
            'items_processed': 0,
            'items_assigned': 0,
            'clusters_created': 0,
            'clusters_updated': 0,
            'orphans': 0,
            'duplicates_skipped': 0
        }

    def find_best_cluster(self, embedding: Sequence[float], clusters: List[Cluster],
                          centroids: CentroidStore) -> Tuple[Optional[Cluster], float]:
        """
        Pick the cluster with the strictly highest similarity at or above the threshold.

        Clusters without a centroid are skipped. On equal similarity the first
        cluster scanned wins.
        """
        best_cluster = None
        best_similarity = 0.0

        for cluster in clusters:
            centroid = centroids.get(cluster.id)
            if centroid is None:
                logger.debug("cluster_without_centroid_skipped", cluster_id=cluster.id)
                continue

            similarity = cosine_similarity(embedding, centroid)
            if similarity >= self.similarity_threshold and (
                    best_cluster is None or similarity > best_similarity):
                best_cluster = cluster
                best_similarity = similarity

        return best_cluster, best_similarity

    def add_to_cluster(self, cluster: Cluster, embedding: ItemEmbedding,
                       items: Mapping[str, Item], centroids: CentroidStore) -> bool:
        """Add one item to a cluster; returns False when it was already a member."""
        if embedding.item_id in cluster.article_ids:
            return False

        previous_count = len(cluster.article_ids)
        cluster.article_ids.append(embedding.item_id)
        cluster.updated_at = utcnow()
        if cluster.status == 'stale':
            cluster.status = 'active'
        self.cluster_manager.refresh_metadata(cluster, items)
        cluster.centroid = centroids.update(cluster.id, embedding.embedding, previous_count)
        return True

    def create_cluster(self, members: List[ItemEmbedding], items: Mapping[str, Item],
                       centroids: CentroidStore) -> Cluster:
        """Materialize a new cluster from a group of mutually similar items."""
        now = utcnow()
        anchor = items.get(members[0].item_id)
        cluster = Cluster(
            id=uuid.uuid4().hex,
            title=anchor.title if anchor is not None else '',
            article_ids=[m.item_id for m in members],
            status='new',
            created_at=now,
            updated_at=now,
        )
        self.cluster_manager.refresh_metadata(cluster, items)

        # First computation is a true mean, not the running update
        cluster.centroid = compute_centroid(m.embedding for m in members)
        centroids.set(cluster.id, cluster.centroid)

        logger.info("created_new_cluster",
                   cluster_id=cluster.id,
                   article_count=cluster.article_count,
                   title=cluster.title)
        return cluster

    def group_unassigned(self, anchor: ItemEmbedding, embeddings: List[ItemEmbedding],
                         assigned: Set[str]) -> List[ItemEmbedding]:
        """Collect unassigned items similar to the anchor (compared to the anchor only)."""
        members = [anchor]
        assigned.add(anchor.item_id)

        for other in embeddings:
            if other.item_id in assigned:
                continue
            if cosine_similarity(anchor.embedding, other.embedding) >= self.similarity_threshold:
                members.append(other)
                assigned.add(other.item_id)

        return members

    def assign(self, embeddings: List[EmbeddingInput], items: Mapping[str, Item],
               clusters: Optional[List[Cluster]] = None,
               centroids: Optional[CentroidStore] = None,
               persist: bool = True) -> AssignmentResult:
        """
        Assign a batch of new items to existing or newly formed clusters.

        `stats` is reset on entry and describes this call only.
        """
        self.reset_stats()
        embeddings = [_as_item_embedding(e) for e in embeddings]
        if clusters is None:
            clusters = self.cluster_manager.get_existing_clusters()
        if centroids is None:
            centroids = CentroidStore(self.storage, self.centroid_policy).load()

        logger.info("processing_clustering_batch",
                   item_count=len(embeddings),
                   existing_clusters=len(clusters))

        candidates = list(clusters)
        result = AssignmentResult()
        updated_ids = set()
        created_ids = set()
        assigned = set()
        seen = set()

        for embedding in embeddings:
            if embedding.item_id in seen:
                self.stats['duplicates_skipped'] += 1
                continue
            seen.add(embedding.item_id)
            self.stats['items_processed'] += 1

            # Already grouped by an earlier anchor
            if embedding.item_id in assigned:
                continue

            best_cluster, best_similarity = self.find_best_cluster(
                embedding.embedding, candidates, centroids
            )

            if best_cluster is not None:
                assigned.add(embedding.item_id)
                if self.add_to_cluster(best_cluster, embedding, items, centroids):
                    self.stats['items_assigned'] += 1
                    logger.debug("assigned_to_existing_cluster",
                               item_id=embedding.item_id,
                               cluster_id=best_cluster.id,
                               similarity=best_similarity)
                    if best_cluster.id not in updated_ids and best_cluster.id not in created_ids:
                        updated_ids.add(best_cluster.id)
                        result.updated.append(best_cluster)
                continue

            members = self.group_unassigned(embedding, embeddings, assigned)
            if len(members) >= self.min_cluster_size:
                cluster = self.create_cluster(members, items, centroids)
                candidates.append(cluster)
                created_ids.add(cluster.id)
                result.created.append(cluster)
                self.stats['items_assigned'] += len(members)
            else:
                # Orphans get another chance on a later pass
                result.orphans.extend(m.item_id for m in members)

        self.stats['clusters_created'] += len(result.created)
        self.stats['clusters_updated'] += len(result.updated)
        self.stats['orphans'] += len(result.orphans)

        if persist:
            for cluster in result.updated + result.created:
                self.cluster_manager.store_cluster(cluster)
            centroids.save()

        logger.info("clustering_batch_complete",
                   updated=len(result.updated),
                   created=len(result.created),
                   orphans=len(result.orphans))
        return result
