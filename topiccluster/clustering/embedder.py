"""
Embedding Adapter

Turns items into embedding vectors with a sentence-transformers model,
batch by batch. Items that already carry an embedding from upstream are
passed through untouched.
"""
import os
from typing import Dict, List, Optional

import numpy as np
import structlog

from topiccluster.config.settings import settings
from topiccluster.models import Item, ItemEmbedding, utcnow
from topiccluster.utils.rate_limit import RateLimiter


logger = structlog.get_logger(__name__)


class Embedder:
    """Generates item embeddings in bounded batches."""

    def __init__(self, config: Optional[Dict] = None, model=None,
                 rate_limiter: Optional[RateLimiter] = None):
        self.config = (config or settings.app_config).get('embedding', {})

        self.model_name = self.config.get('model_name', 'sentence-transformers/all-MiniLM-L6-v2')
        self.batch_size = self.config.get('batch_size', 50)
        self.max_text_chars = self.config.get('max_text_chars', 1000)
        self.rate_limiter = rate_limiter or RateLimiter.per_minute(
            self.config.get('requests_per_minute', 0)
        )

        self.model = model

    def _initialize_model(self):
        """Load the sentence transformer model on first use."""
        try:
            from sentence_transformers import SentenceTransformer

            cache_dir = os.environ.get('TRANSFORMERS_CACHE')
            logger.info("initializing_sentence_transformer", model=self.model_name)
            self.model = SentenceTransformer(self.model_name, cache_folder=cache_dir)
            logger.info("model_initialized_successfully")
        except Exception as e:
            logger.error("model_initialization_error", error=str(e))
            raise

    def prepare_text(self, item: Item) -> str:
        """Title plus the opening of the body text."""
        return f"{item.title}\n\n{item.text[:self.max_text_chars]}"

    def embed_items(self, items: List[Item]) -> List[ItemEmbedding]:
        """Embed items in input order, reusing embeddings that are already present."""
        results: Dict[str, ItemEmbedding] = {}
        pending = []

        for item in items:
            if item.embedding is not None:
                results[item.id] = ItemEmbedding(item.id, list(item.embedding), 'upstream', utcnow())
            else:
                pending.append(item)

        if pending and self.model is None:
            self._initialize_model()

        for i in range(0, len(pending), self.batch_size):
            batch = pending[i:i + self.batch_size]
            self.rate_limiter.wait()

            try:
                vectors = self.model.encode([self.prepare_text(item) for item in batch],
                                            convert_to_numpy=True)
            except Exception as e:
                logger.error("embedding_generation_error", error=str(e), batch_size=len(batch))
                raise

            created_at = utcnow()
            for item, vector in zip(batch, np.asarray(vectors)):
                results[item.id] = ItemEmbedding(item.id, vector.tolist(), self.model_name, created_at)

            logger.debug("embedding_batch_completed",
                        batch_num=i // self.batch_size + 1,
                        batch_size=len(batch))

        return [results[item.id] for item in items if item.id in results]
