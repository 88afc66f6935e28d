"""Shared fixtures for the topiccluster test suite."""
import copy
import math

import pytest

from topiccluster.models import Item
from topiccluster.storage.local_storage import LocalStorage


BASE_CONFIG = {
    'clustering': {
        'similarity_threshold': 0.72,
        'merge_threshold': 0.85,
        'min_cluster_size': 3,
        'top_sources': 5,
        'centroid_policy': 'running_average',
        'time_window_hours': None,
        'max_items_per_day': 500,
        'stale_cluster_days': 7,
        'archive_cluster_days': 30,
    },
    'embedding': {
        'batch_size': 2,
        'requests_per_minute': 0,
        'max_text_chars': 1000,
    },
    'pipeline': {
        'lock_timeout_minutes': 15,
    },
}

DIMENSIONS = 8


@pytest.fixture
def config():
    return copy.deepcopy(BASE_CONFIG)


@pytest.fixture
def storage(tmp_path):
    return LocalStorage(str(tmp_path / 'store'))


@pytest.fixture
def topic_vector():
    """
    Unit vectors sharing a topic axis.

    topic_vector(topic, member) = sqrt(0.9) * e[topic] + sqrt(0.1) * e[member],
    so two members of the same topic have cosine similarity 0.9 and members
    of different topics have similarity 0.
    """
    def build(topic: int, member: int, dimensions: int = DIMENSIONS):
        vector = [0.0] * dimensions
        vector[topic] = math.sqrt(0.9)
        vector[member] += math.sqrt(0.1)
        return vector
    return build


@pytest.fixture
def make_items():
    def build(*pairs):
        return {item_id: Item(id=item_id, source=source, title=f"Title {item_id}")
                for item_id, source in pairs}
    return build
