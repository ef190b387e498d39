"""
Dual-embedding retrieval: embedding services, the vector store and the RAG
facade.
"""

from __future__ import annotations

from autodoc_rag.rag.embedding_provider import (
    DefaultEmbeddingService,
    EmbeddingService,
    ModelState,
    SemanticHashEmbeddingService,
)
from autodoc_rag.rag.models import (
    CombinedWeights,
    Document,
    IndexedDocument,
    QueryOptions,
    SearchMode,
    SearchResult,
    SearchResults,
    SearchTelemetry,
)
from autodoc_rag.rag.search import RAGService, RAGServiceConfig
from autodoc_rag.rag.vector_store import (
    InMemoryVectorStore,
    VectorStore,
    VectorStoreConfig,
    build_vector_store,
    cosine_similarity,
)

__all__ = [
    "CombinedWeights",
    "DefaultEmbeddingService",
    "Document",
    "EmbeddingService",
    "InMemoryVectorStore",
    "IndexedDocument",
    "ModelState",
    "QueryOptions",
    "RAGService",
    "RAGServiceConfig",
    "SearchMode",
    "SearchResult",
    "SearchResults",
    "SearchTelemetry",
    "SemanticHashEmbeddingService",
    "VectorStore",
    "VectorStoreConfig",
    "build_vector_store",
    "cosine_similarity",
]
