"""Tests for the embedding adapter using a stand-in model."""
import numpy as np
import pytest

from topiccluster.clustering.embedder import Embedder
from topiccluster.models import Item


class FakeModel:
    def __init__(self, fail=False):
        self.batches = []
        self.fail = fail

    def encode(self, texts, convert_to_numpy=True):
        if self.fail:
            raise RuntimeError('model offline')
        self.batches.append(list(texts))
        return np.array([[float(len(text)), 1.0] for text in texts])


class CountingLimiter:
    def __init__(self):
        self.calls = 0

    def wait(self):
        self.calls += 1
        return 0.0


def test_items_are_embedded_in_batches(config):
    model = FakeModel()
    limiter = CountingLimiter()
    embedder = Embedder(config, model=model, rate_limiter=limiter)
    items = [Item(id=str(n), source='wire', title='t' * n) for n in range(1, 6)]

    embeddings = embedder.embed_items(items)

    assert [e.item_id for e in embeddings] == ['1', '2', '3', '4', '5']
    assert [len(batch) for batch in model.batches] == [2, 2, 1]
    assert limiter.calls == 3
    assert embeddings[0].embedding == [3.0, 1.0]


def test_upstream_embeddings_are_reused(config):
    model = FakeModel()
    embedder = Embedder(config, model=model, rate_limiter=CountingLimiter())
    items = [Item(id='a', source='wire', embedding=[0.5, 0.5]),
             Item(id='b', source='wire', title='fresh')]

    embeddings = embedder.embed_items(items)

    assert [e.item_id for e in embeddings] == ['a', 'b']
    assert embeddings[0].embedding == [0.5, 0.5]
    assert embeddings[0].model == 'upstream'
    assert model.batches == [['fresh\n\n']]


def test_prepare_text_truncates_body(config):
    config['embedding']['max_text_chars'] = 4
    embedder = Embedder(config, model=FakeModel())
    item = Item(id='a', source='wire', title='Headline', text='abcdefgh')
    assert embedder.prepare_text(item) == 'Headline\n\nabcd'


def test_no_model_needed_when_everything_is_embedded(config):
    embedder = Embedder(config, rate_limiter=CountingLimiter())
    embeddings = embedder.embed_items([Item(id='a', source='wire', embedding=[1.0])])
    assert embedder.model is None
    assert embeddings[0].embedding == [1.0]


def test_model_errors_propagate(config):
    embedder = Embedder(config, model=FakeModel(fail=True), rate_limiter=CountingLimiter())
    with pytest.raises(RuntimeError):
        embedder.embed_items([Item(id='a', source='wire', title='x')])
