"""
Cluster Lifecycle

Time-based status policy. A cluster that has not been updated for
`stale_cluster_days` becomes stale; a stale cluster untouched for
`archive_cluster_days` is archived and drops out of future loads. A stale
cluster that receives a new member is reactivated by the assigner.
"""
from datetime import datetime, timedelta
from typing import Dict, List, Optional

import structlog

from topiccluster.config.settings import settings
from topiccluster.models import Cluster, utcnow


logger = structlog.get_logger(__name__)


class ClusterLifecycle:
    """Applies the stale/archived transitions."""

    def __init__(self, config: Optional[Dict] = None):
        clustering_config = (config or settings.app_config).get('clustering', {})
        self.stale_after = timedelta(days=clustering_config.get('stale_cluster_days', 7))
        self.archive_after = timedelta(days=clustering_config.get('archive_cluster_days', 30))
        if self.archive_after < self.stale_after:
            raise ValueError("archive_cluster_days must not be shorter than stale_cluster_days")

    def next_status(self, cluster: Cluster, now: datetime) -> str:
        age = now - cluster.updated_at
        if cluster.status in ('new', 'active') and age > self.stale_after:
            return 'stale'
        if cluster.status == 'stale' and age > self.archive_after:
            return 'archived'
        return cluster.status

    def apply(self, clusters: List[Cluster], now: Optional[datetime] = None) -> List[Cluster]:
        """Update statuses in place; returns the clusters whose status changed."""
        now = now or utcnow()
        changed = []

        for cluster in clusters:
            status = self.next_status(cluster, now)
            if status != cluster.status:
                logger.info("cluster_status_changed",
                           cluster_id=cluster.id,
                           old_status=cluster.status,
                           new_status=status)
                cluster.status = status
                changed.append(cluster)

        return changed
