"""Clustering Module

Online assignment of items to topic clusters, centroid maintenance and
near-duplicate cluster merging.
"""

from .centroid_store import CentroidStore
from .cluster_manager import ClusterManager
from .cluster_merger import ClusterMerger
from .semantic_clusterer import SemanticClusterer
from .similarity import cosine_similarity

__all__ = ['CentroidStore', 'ClusterManager', 'ClusterMerger', 'SemanticClusterer', 'cosine_similarity']
