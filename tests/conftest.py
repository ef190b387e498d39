"""
Shared test fixtures and pytest configuration.

Markers:
    @pytest.mark.embedding    Requires the sentence-transformers model to be downloadable

Run:
    pytest -m embedding               # only real-model tests
    pytest -m "not embedding"         # skip them (fast CI)
"""

import threading
import time
from typing import Any, Callable, List, Optional

import numpy as np
import pytest

from autodoc_rag.rag.embedding_provider import SemanticHashEmbeddingService
from autodoc_rag.rag.semantic_hash import semantic_embedding
from autodoc_rag.rag.vector_store import InMemoryVectorStore, VectorStoreConfig


def _embedding_model_available() -> bool:
    """Check if all-MiniLM-L6-v2 can be loaded (already cached or downloadable)."""
    try:
        from sentence_transformers import SentenceTransformer

        model = SentenceTransformer("sentence-transformers/all-MiniLM-L6-v2")
        vec = model.encode(["test"])
        return vec.shape[1] == 384
    except Exception:
        return False


# Cache the check at module level so it runs once per session
_EMBEDDING_OK: Optional[bool] = None


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "embedding: requires sentence-transformers model available")


def pytest_collection_modifyitems(config, items):
    """Auto-skip tests whose model requirement is not met."""
    global _EMBEDDING_OK

    marked = [item for item in items if "embedding" in item.keywords]
    if not marked:
        return
    if _EMBEDDING_OK is None:
        _EMBEDDING_OK = _embedding_model_available()

    skip_embedding = pytest.mark.skip(reason="Embedding model not available (all-MiniLM-L6-v2)")
    if not _EMBEDDING_OK:
        for item in marked:
            item.add_marker(skip_embedding)


# ── Fake sentence-transformers model ─────────────────────────────────────────


class FakeModel:
    """
    Stand-in for a SentenceTransformer.

    ``encode`` returns whatever ``respond(text)`` produces. The default response
    is a (1, dim) batch holding a scaled semantic-hash vector, so the real
    output path (nested batch, normalization) is exercised. Tracks how many
    encode calls run at once.
    """

    def __init__(self, dim: int = 384, respond: Optional[Callable[[str], Any]] = None, delay: float = 0.0):
        self.dim = dim
        self.respond = respond or (lambda text: np.array([semantic_embedding(text, dim) * 3.0]))
        self.delay = delay
        self.calls: List[str] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()

    def encode(self, texts, **kwargs):
        (text,) = texts
        with self._lock:
            self.calls.append(text)
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                time.sleep(self.delay)
            return self.respond(text)
        finally:
            with self._lock:
                self.in_flight -= 1


class FakeLoader:
    """Counts loads; optionally sleeps, and fails the first ``failures`` attempts."""

    def __init__(self, model: Any = None, delay: float = 0.0, failures: int = 0):
        self.model = model if model is not None else FakeModel()
        self.delay = delay
        self.failures = failures
        self.calls: List[str] = []

    def __call__(self, model_name: str) -> Any:
        self.calls.append(model_name)
        if self.delay:
            time.sleep(self.delay)
        if len(self.calls) <= self.failures:
            raise OSError(f"cannot download {model_name}")
        return self.model


# ── Fixtures ─────────────────────────────────────────────────────────────────


@pytest.fixture
def fake_model():
    return FakeModel()


@pytest.fixture
def hash_embedder():
    return SemanticHashEmbeddingService(dimension=384)


@pytest.fixture
def store(hash_embedder):
    """Store over semantic-hash embeddings with no similarity cutoff."""
    return InMemoryVectorStore(hash_embedder, VectorStoreConfig(similarity_threshold=0.0, max_results=5))


@pytest.fixture
def sample_documents():
    return [
        {
            "id": "doc1",
            "title": "How to optimize TypeScript compilation",
            "content": "TypeScript compilation can be optimized by using incremental compilation, "
            "project references, and excluding test files.",
            "tags": {"typescript", "performance"},
        },
        {
            "id": "doc2",
            "title": "Understanding React useState hook",
            "content": "The useState hook in React allows functional components to manage state.",
            "tags": {"react", "hooks"},
        },
        {
            "id": "doc3",
            "title": "Async/await best practices in JavaScript",
            "content": "Handle errors with try/catch blocks and use Promise.allSettled for concurrent work.",
            "tags": {"javascript", "async"},
        },
        {
            "id": "doc4",
            "title": "CSS Grid vs Flexbox",
            "content": "CSS Grid is ideal for two-dimensional layouts while Flexbox suits one-dimensional ones.",
            "tags": {"css", "layout"},
        },
        {
            "id": "doc5",
            "title": "JavaScript Promise error handling patterns",
            "content": "Use catch at the end of promise chains, or try/catch with async/await.",
            "tags": {"javascript", "promises"},
        },
        {
            "id": "doc6",
            "title": "TypeScript advanced type usage",
            "content": "Mapped types, conditional types and template literal types in TypeScript.",
            "tags": {"typescript", "types"},
        },
    ]
