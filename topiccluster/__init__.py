"""
Topic Cluster

Incremental semantic clustering of short news and social documents, with a
lease-locked coordinator for the pipeline stages that feed and consume it.
"""

__version__ = '0.1.0'
