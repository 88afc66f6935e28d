"""
Cluster Merger

Consolidates near-duplicate clusters whose centroids are more similar than
the merge threshold. The surviving cluster keeps its id; the absorbed
cluster's record and centroid entry are deleted.

Merging is transitive within one pass only: comparisons always use the
primary cluster's centroid from before the pass, so a cluster that would only
match the combined result is picked up by the next invocation.
"""
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

import structlog

from topiccluster.clustering.centroid_store import CentroidStore
from topiccluster.clustering.cluster_manager import ClusterManager
from topiccluster.clustering.similarity import similarity_matrix
from topiccluster.config.settings import settings
from topiccluster.models import Cluster, Item, utcnow
from topiccluster.storage.backend import StorageBackend


logger = structlog.get_logger(__name__)


@dataclass
class MergeResult:
    clusters: List[Cluster] = field(default_factory=list)
    merged: Dict[str, str] = field(default_factory=dict)  # absorbed id -> survivor id


def _union(first: List[str], second: List[str]) -> List[str]:
    return list(dict.fromkeys(first + second))


class ClusterMerger:
    """Merges clusters whose centroids are near-duplicates."""

    def __init__(self, storage: StorageBackend, config: Optional[Dict] = None,
                 cluster_manager: Optional[ClusterManager] = None):
        self.storage = storage
        self.config = config or settings.app_config
        clustering_config = self.config.get('clustering', {})

        self.similarity_threshold = clustering_config.get('similarity_threshold', 0.72)
        self.merge_threshold = clustering_config.get('merge_threshold', 0.85)
        if self.merge_threshold <= self.similarity_threshold:
            raise ValueError(
                f"merge_threshold ({self.merge_threshold}) must be greater than "
                f"similarity_threshold ({self.similarity_threshold})"
            )

        self.cluster_manager = cluster_manager or ClusterManager(storage, self.config)

    def merge_two_clusters(self, primary: Cluster, secondary: Cluster,
                           items: Optional[Mapping[str, Item]] = None) -> Cluster:
        """Absorb `secondary` into `primary`, keeping the primary's id."""
        # Title of the larger cluster; ties keep the primary's
        if secondary.article_count > primary.article_count:
            primary.title = secondary.title

        primary.importance = max(primary.importance, secondary.importance)
        primary.article_ids = _union(primary.article_ids, secondary.article_ids)
        primary.social_post_ids = _union(primary.social_post_ids, secondary.social_post_ids)
        primary.article_count = len(primary.article_ids)
        primary.updated_at = utcnow()

        if items is not None:
            # Source statistics follow the union; importance stays the max of the two
            importance = primary.importance
            self.cluster_manager.refresh_metadata(primary, items)
            primary.importance = importance

        return primary

    def merge(self, clusters: List[Cluster], centroids: CentroidStore,
              items: Optional[Mapping[str, Item]] = None,
              persist: bool = True) -> MergeResult:
        """Run one merge pass over clusters in the given order."""
        result = MergeResult()
        with_centroid = [i for i, c in enumerate(clusters) if centroids.get(c.id) is not None]
        position = {cluster_index: row for row, cluster_index in enumerate(with_centroid)}

        # Snapshot of all centroids before any comparison
        matrix = similarity_matrix([centroids.get(clusters[i].id) for i in with_centroid])
        touched = set()

        for i, primary in enumerate(clusters):
            if primary.id in result.merged:
                continue

            if i in position:
                for j in range(i + 1, len(clusters)):
                    secondary = clusters[j]
                    if secondary.id in result.merged or j not in position:
                        continue

                    similarity = float(matrix[position[i], position[j]])
                    if similarity >= self.merge_threshold:
                        self.merge_two_clusters(primary, secondary, items)
                        result.merged[secondary.id] = primary.id
                        touched.add(primary.id)
                        logger.info("merged_cluster",
                                   absorbed_id=secondary.id,
                                   survivor_id=primary.id,
                                   similarity=round(similarity, 3))

            result.clusters.append(primary)

        if persist and result.merged:
            for cluster in result.clusters:
                if cluster.id in touched:
                    self.cluster_manager.store_cluster(cluster)
            for absorbed_id in result.merged:
                self.cluster_manager.delete_cluster(absorbed_id)
                centroids.delete(absorbed_id)
            centroids.save()
        elif not persist:
            for absorbed_id in result.merged:
                centroids.delete(absorbed_id)

        logger.info("merge_pass_complete",
                   clusters_in=len(clusters),
                   clusters_out=len(result.clusters),
                   merged=len(result.merged))
        return result
