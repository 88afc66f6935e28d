"""
Centroid Store

Persisted mapping of cluster id -> centroid vector, kept apart from the
cluster records so assignment never has to load full cluster bodies.

The index is read in full before a pass and written in full after it. There
is no per-key merge at the storage layer: the last writer of the whole map
wins, so two passes must never run the store concurrently.
"""
from typing import Dict, Iterable, List, Optional, Sequence

import numpy as np
import structlog

from topiccluster.clustering.similarity import DimensionMismatchError
from topiccluster.storage.backend import StorageBackend


logger = structlog.get_logger(__name__)

CENTROID_INDEX_PATH = 'clusters/centroids.json'


class CentroidPolicy:
    """How a centroid moves when one member vector is added."""

    name = 'base'

    def update(self, current: Sequence[float], new_vector: Sequence[float],
               member_count: int) -> List[float]:
        raise NotImplementedError


class RunningAveragePolicy(CentroidPolicy):
    """
    Elementwise mean of the current centroid and the single new vector.

    This is not the mean of all members: each update halves the weight of
    everything seen before, so the centroid tracks the newest members. O(1)
    and cheap, but long-lived high-volume clusters drift toward recent
    coverage. Use IncrementalMeanPolicy when long-term accuracy matters more.
    """

    name = 'running_average'

    def update(self, current, new_vector, member_count):
        return ((np.asarray(current, dtype=np.float64) +
                 np.asarray(new_vector, dtype=np.float64)) / 2).tolist()


class IncrementalMeanPolicy(CentroidPolicy):
    """True running mean given the member count before the new vector."""

    name = 'incremental_mean'

    def update(self, current, new_vector, member_count):
        current = np.asarray(current, dtype=np.float64)
        n = max(member_count, 0)
        return (current + (np.asarray(new_vector, dtype=np.float64) - current) / (n + 1)).tolist()


CENTROID_POLICIES = {
    RunningAveragePolicy.name: RunningAveragePolicy,
    IncrementalMeanPolicy.name: IncrementalMeanPolicy,
}


def get_centroid_policy(name: str) -> CentroidPolicy:
    try:
        return CENTROID_POLICIES[name]()
    except KeyError:
        raise ValueError(f"Unknown centroid policy: {name}") from None


def compute_centroid(vectors: Iterable[Sequence[float]]) -> List[float]:
    """Arithmetic mean of member vectors."""
    vectors = [list(v) for v in vectors]
    if not vectors:
        return []
    lengths = {len(v) for v in vectors}
    if len(lengths) != 1:
        raise DimensionMismatchError(f"Vectors have mixed lengths: {sorted(lengths)}")
    return np.mean(np.asarray(vectors, dtype=np.float64), axis=0).tolist()


class CentroidStore:
    """In-memory view of the centroid index with explicit load/save."""

    def __init__(self, storage: StorageBackend, policy: Optional[CentroidPolicy] = None,
                 path: str = CENTROID_INDEX_PATH):
        self.storage = storage
        self.policy = policy or RunningAveragePolicy()
        self.path = path
        self._centroids: Dict[str, List[float]] = {}

    def load(self) -> 'CentroidStore':
        index = self.storage.read(self.path) or {}
        self._centroids = {
            cluster_id: [float(v) for v in vector]
            for cluster_id, vector in index.items()
            if vector
        }
        logger.debug("centroid_index_loaded", count=len(self._centroids))
        return self

    def save(self) -> None:
        self.storage.write(self.path, dict(self._centroids))
        logger.debug("centroid_index_saved", count=len(self._centroids))

    def get(self, cluster_id: str) -> Optional[List[float]]:
        return self._centroids.get(cluster_id)

    def set(self, cluster_id: str, vector: Sequence[float]) -> None:
        self._centroids[cluster_id] = [float(v) for v in vector]

    def delete(self, cluster_id: str) -> None:
        self._centroids.pop(cluster_id, None)

    def ids(self) -> List[str]:
        return list(self._centroids)

    def as_dict(self) -> Dict[str, List[float]]:
        return dict(self._centroids)

    def update_running_average(self, cluster_id: str, new_vector: Sequence[float]) -> List[float]:
        """Average the current centroid with one new vector (see RunningAveragePolicy)."""
        return self._apply(cluster_id, new_vector, RunningAveragePolicy(), member_count=1)

    def update(self, cluster_id: str, new_vector: Sequence[float], member_count: int) -> List[float]:
        """Move a centroid by the configured policy; member_count excludes the new vector."""
        return self._apply(cluster_id, new_vector, self.policy, member_count)

    def _apply(self, cluster_id, new_vector, policy, member_count):
        current = self._centroids.get(cluster_id)
        if current is None:
            updated = [float(v) for v in new_vector]
        else:
            if len(current) != len(new_vector):
                raise DimensionMismatchError(
                    f"Centroid {cluster_id} has length {len(current)}, vector has {len(new_vector)}"
                )
            updated = policy.update(current, new_vector, member_count)
        self._centroids[cluster_id] = updated
        return updated

    def __contains__(self, cluster_id: str) -> bool:
        return cluster_id in self._centroids

    def __len__(self) -> int:
        return len(self._centroids)
