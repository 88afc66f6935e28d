#!/usr/bin/env python3
"""
Run Semantic Clustering

Quick script to run the cluster stage once, under its stage lock.

Usage:
    python run_clustering.py
"""

from topiccluster.clustering.cluster_scheduler import ClusterScheduler
from topiccluster.logging_config import setup_logging
from topiccluster.pipeline.state_manager import StateManager
from topiccluster.storage.factory import get_storage

def main():
    """Run clustering once on unclustered items."""
    setup_logging()
    storage = get_storage()
    scheduler = ClusterScheduler(storage)

    print("Running semantic clustering...")
    outcome = StateManager(storage).run_stage('cluster', scheduler.run_once)

    if not outcome.ran:
        print(f"\n{outcome.error}")
        return 1
    if not outcome.success:
        print(f"\nClustering failed: {outcome.error}")
        return 1

    stats = outcome.result
    print("\nClustering Results:")
    print(f"  Items processed: {stats.get('items_processed', 0)}")
    print(f"  Clusters created: {stats.get('clusters_created', 0)}")
    print(f"  Clusters updated: {stats.get('clusters_updated', 0)}")
    print(f"  Clusters merged: {stats.get('clusters_merged', 0)}")
    print(f"  Orphan items: {stats.get('orphans', 0)}")
    print(f"  Processing time: {stats.get('processing_time_seconds', 0):.2f} seconds")
    return 0

if __name__ == "__main__":
    raise SystemExit(main())
