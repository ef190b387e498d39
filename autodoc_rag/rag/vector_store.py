"""
Dual-embedding vector store.

Every document is indexed with two vectors, one for its title and one for its
content, so queries can target either field or a weighted blend of both.

The in-memory backend is the only one provided; ``build_vector_store`` is the
seam where durable backends would plug in.
"""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import Any, Dict, Iterable, List, Optional, Sequence

import numpy as np
from pydantic import ValidationError

from autodoc_rag.errors import DimensionMismatchError, DocumentValidationError
from autodoc_rag.rag.embedding_provider import EmbeddingService
from autodoc_rag.rag.models import (
    CombinedWeights,
    Document,
    DocumentLike,
    FilterFn,
    IndexedDocument,
    QueryOptions,
    SearchMode,
    SearchResult,
    SearchResults,
    SearchTelemetry,
    as_document,
)
from autodoc_rag.telemetry import TelemetryMetrics, TelemetrySink, emit, track

LOG = logging.getLogger("rag.vector_store")

SUPPORTED_STORAGE_TYPES = ("memory",)


@dataclass
class VectorStoreConfig:
    """
    Store configuration, fixed at construction.

    ``embedding_dimension`` defaults to the embedding service's dimension;
    when given it must match it.
    """

    embedding_dimension: Optional[int] = None
    max_results: int = 5
    similarity_threshold: float = 0.7
    storage_type: str = "memory"

    def __post_init__(self) -> None:
        if self.max_results < 1:
            raise ValueError(f"max_results must be >= 1, got {self.max_results}")
        if self.storage_type not in SUPPORTED_STORAGE_TYPES:
            raise ValueError(
                f"Unknown storage type: {self.storage_type!r}. Supported: {', '.join(SUPPORTED_STORAGE_TYPES)}"
            )


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """Cosine of the angle between ``a`` and ``b``; 0.0 if either is zero."""
    if a.shape != b.shape:
        raise DimensionMismatchError(f"Vector dimensions do not match: {a.shape[0]} vs {b.shape[0]}")
    denom = float(np.linalg.norm(a)) * float(np.linalg.norm(b))
    if denom == 0.0:
        return 0.0
    return float(np.dot(a, b)) / denom


class VectorStore(ABC):
    """Abstract interface for a dual-embedding document store."""

    @abstractmethod
    async def add_document(self, document: DocumentLike) -> None:
        """Index one document, replacing any document with the same id."""

    @abstractmethod
    async def add_documents(self, documents: Iterable[DocumentLike]) -> None:
        """Index many documents. Stops at the first invalid one; earlier ones stay."""

    @abstractmethod
    def get_document(self, doc_id: str) -> Optional[Document]:
        """Return a copy of the document, or ``None``."""

    @abstractmethod
    async def remove_document(self, doc_id: str) -> bool:
        """Remove a document. Returns whether it existed."""

    @abstractmethod
    def size(self) -> int:
        """Return the number of documents in the store."""

    @abstractmethod
    def export_documents(self) -> List[Document]:
        """Snapshot of all documents (without embeddings), in insertion order."""

    @abstractmethod
    async def load_documents(self, documents: Iterable[DocumentLike]) -> None:
        """Replace the whole collection, re-embedding every document."""

    @abstractmethod
    async def search(self, query: str, options: Optional[QueryOptions] = None) -> SearchResults:
        """Rank documents against ``query``."""


class InMemoryVectorStore(VectorStore):
    """
    Vector store held in a dict keyed by document id.

    Writers are serialized by one ``asyncio.Lock``. Embeddings are computed
    before the lock is taken and each entry is installed with a single
    assignment, so a reader never observes a partially indexed document.
    Dict insertion order is the tie-break order for equal scores; replacing a
    document keeps its original position.
    """

    def __init__(
        self,
        embedding_service: EmbeddingService,
        config: Optional[VectorStoreConfig] = None,
        telemetry: Optional[TelemetrySink] = None,
    ) -> None:
        config = config or VectorStoreConfig()
        service_dim = embedding_service.dimension()
        if config.embedding_dimension is None:
            config = replace(config, embedding_dimension=service_dim)
        elif config.embedding_dimension != service_dim:
            raise DimensionMismatchError(
                f"VectorStore configured for {config.embedding_dimension} dimensions, "
                f"but the embedding service produces {service_dim}"
            )

        self._embedder = embedding_service
        self._config = config
        self._telemetry = telemetry
        self._documents: Dict[str, IndexedDocument] = {}
        self._lock = asyncio.Lock()

    @property
    def config(self) -> VectorStoreConfig:
        return self._config

    @property
    def dimension(self) -> int:
        return self._config.embedding_dimension

    def size(self) -> int:
        return len(self._documents)

    def __contains__(self, doc_id: object) -> bool:
        return doc_id in self._documents

    # ── validation ───────────────────────────────────────────────────────────

    @staticmethod
    def _coerce(value: DocumentLike) -> Document:
        try:
            document = as_document(value)
        except ValidationError as exc:
            raise DocumentValidationError(f"Invalid document: {exc}") from exc
        if not document.id:
            raise DocumentValidationError("Document id must be a non-empty string")
        return document

    def _check_vector(self, vector: np.ndarray, what: str) -> np.ndarray:
        vector = np.asarray(vector, dtype=np.float64)
        if vector.ndim != 1 or vector.shape[0] != self.dimension:
            raise DimensionMismatchError(
                f"{what} has shape {vector.shape}, expected ({self.dimension},)"
            )
        return vector

    async def _index(self, documents: Sequence[Document]) -> List[IndexedDocument]:
        """Embed titles and contents for ``documents``; nothing is stored."""
        if not documents:
            return []
        titles, contents = await asyncio.gather(
            self._embedder.embed_batch([d.title for d in documents]),
            self._embedder.embed_batch([d.content for d in documents]),
        )
        return [
            IndexedDocument(
                document=d,
                title_vector=self._check_vector(t, f"title embedding of {d.id!r}"),
                content_vector=self._check_vector(c, f"content embedding of {d.id!r}"),
            )
            for d, t, c in zip(documents, titles, contents)
        ]

    # ── writes ───────────────────────────────────────────────────────────────

    async def add_document(self, document: DocumentLike) -> None:
        doc = self._coerce(document)
        async with track(self._telemetry, "VectorStore.add_document", document_id=doc.id, operation="update"):
            title_vec, content_vec = await asyncio.gather(
                self._embedder.embed_text(doc.title),
                self._embedder.embed_text(doc.content),
            )
            indexed = IndexedDocument(
                document=doc,
                title_vector=self._check_vector(title_vec, f"title embedding of {doc.id!r}"),
                content_vector=self._check_vector(content_vec, f"content embedding of {doc.id!r}"),
            )
            async with self._lock:
                self._documents[doc.id] = indexed
        LOG.debug("Indexed document %s", doc.id)

    async def add_documents(self, documents: Iterable[DocumentLike]) -> None:
        documents = list(documents)
        valid: List[Document] = []
        failure: Optional[DocumentValidationError] = None
        for value in documents:
            try:
                valid.append(self._coerce(value))
            except DocumentValidationError as exc:
                failure = exc
                break

        async with track(
            self._telemetry, "VectorStore.add_documents", batch_size=len(documents), operation="update"
        ) as metrics:
            indexed = await self._index(valid)
            async with self._lock:
                for entry in indexed:
                    self._documents[entry.document.id] = entry
            metrics.additional_info["indexed"] = len(indexed)
            if failure is not None:
                LOG.warning("add_documents stopped after %d of %d: %s", len(indexed), len(documents), failure)
                raise DocumentValidationError(f"documents[{len(valid)}] rejected: {failure}") from failure

    async def remove_document(self, doc_id: str) -> bool:
        async with self._lock:
            removed = self._documents.pop(doc_id, None) is not None
        if removed:
            emit(
                self._telemetry,
                TelemetryMetrics(
                    source="VectorStore.remove_document",
                    additional_info={"document_id": doc_id, "operation": "delete"},
                ),
            )
        return removed

    async def load_documents(self, documents: Iterable[DocumentLike]) -> None:
        """
        Replace the collection with ``documents``.

        The batch is validated and embedded before anything is replaced; if
        any document is invalid the current contents are left untouched.
        """
        docs = []
        for i, value in enumerate(documents):
            try:
                docs.append(self._coerce(value))
            except DocumentValidationError as exc:
                raise DocumentValidationError(f"documents[{i}] rejected: {exc}") from exc

        indexed = await self._index(docs)
        replacement = {entry.document.id: entry for entry in indexed}
        async with self._lock:
            self._documents = replacement
        LOG.info("Loaded %d documents", len(replacement))

    # ── reads ────────────────────────────────────────────────────────────────

    def get_document(self, doc_id: str) -> Optional[Document]:
        entry = self._documents.get(doc_id)
        if entry is None:
            return None
        return entry.document.model_copy(deep=True)

    def get_indexed_document(self, doc_id: str) -> Optional[IndexedDocument]:
        """The document with copies of its embeddings, or ``None``."""
        entry = self._documents.get(doc_id)
        if entry is None:
            return None
        return IndexedDocument(
            document=entry.document.model_copy(deep=True),
            title_vector=entry.title_vector.copy(),
            content_vector=entry.content_vector.copy(),
            updated_at=entry.updated_at,
        )

    def export_documents(self) -> List[Document]:
        return [entry.document.model_copy(deep=True) for entry in self._documents.values()]

    # ── search ───────────────────────────────────────────────────────────────

    def _candidates(self, filter_fn: Optional[FilterFn]) -> List[IndexedDocument]:
        entries = list(self._documents.values())
        if filter_fn is None:
            return entries
        return [e for e in entries if filter_fn(e.document.model_copy(deep=True))]

    def _rank(self, scored: List[SearchResult], top_k: int) -> List[SearchResult]:
        threshold = self._config.similarity_threshold
        kept = [r for r in scored if r.score >= threshold]
        # sorted() is stable, so equal scores keep insertion order
        kept = sorted(kept, key=lambda r: r.score, reverse=True)
        return kept[:top_k]

    def _result(self, entry: IndexedDocument, score: float, mode: SearchMode) -> SearchResult:
        return SearchResult(document=entry.document.model_copy(deep=True), score=score, matched_on=mode)

    def _empty(self, query: str, start: float) -> SearchResults:
        return SearchResults(
            results=[],
            telemetry=SearchTelemetry(
                latency_ms=(time.perf_counter() - start) * 1000,
                match_count=0,
                total_documents=self.size(),
                query=query,
                timestamp=time.time(),
            ),
        )

    async def search(self, query: str, options: Optional[QueryOptions] = None) -> SearchResults:
        """
        Rank stored documents against ``query``.

        The query is embedded once. ``title`` and ``content`` modes compare it
        with the corresponding stored vector; ``combined`` blends both cosine
        scores with the given weights. Results below the similarity threshold
        are dropped, the rest sorted by descending score (stable) and cut to
        ``top_k``. An empty store or blank query yields no results.
        """
        start = time.perf_counter()
        options = options or QueryOptions()
        top_k = options.top_k or self._config.max_results
        mode = options.search_mode or SearchMode.COMBINED
        weights = options.combined_weights or CombinedWeights()

        async with track(self._telemetry, "VectorStore.search", query=query, search_mode=mode.value) as metrics:
            if not query.strip() or not self._documents:
                return self._empty(query, start)

            query_vector = self._check_vector(await self._embedder.embed_text(query), "query embedding")

            scored: List[SearchResult] = []
            for entry in self._candidates(options.filter_fn):
                if mode is SearchMode.TITLE:
                    score = cosine_similarity(query_vector, entry.title_vector)
                elif mode is SearchMode.CONTENT:
                    score = cosine_similarity(query_vector, entry.content_vector)
                else:
                    score = weights.title * cosine_similarity(
                        query_vector, entry.title_vector
                    ) + weights.content * cosine_similarity(query_vector, entry.content_vector)
                scored.append(self._result(entry, score, mode))

            results = self._rank(scored, top_k)
            metrics.retrieval_count = len(results)
            metrics.additional_info.update(results_count=len(results), total_documents=self.size())

        latency_ms = (time.perf_counter() - start) * 1000
        LOG.debug("search %r (%s): %d/%d in %.2fms", query, mode.value, len(results), self.size(), latency_ms)
        return SearchResults(
            results=results,
            telemetry=SearchTelemetry(
                latency_ms=latency_ms,
                match_count=len(results),
                total_documents=self.size(),
                query=query,
                timestamp=time.time(),
            ),
        )

    async def search_by_embedding(
        self,
        embedding: Any,
        target_field: SearchMode = SearchMode.CONTENT,
        options: Optional[QueryOptions] = None,
    ) -> SearchResults:
        """
        Rank documents against a pre-computed vector.

        ``target_field`` is ``title`` or ``content``; ``options.search_mode``
        and ``options.combined_weights`` are ignored.
        """
        start = time.perf_counter()
        target_field = SearchMode(target_field)
        if target_field is SearchMode.COMBINED:
            raise ValueError("search_by_embedding targets a single field: 'title' or 'content'")
        options = options or QueryOptions()
        top_k = options.top_k or self._config.max_results
        label = f"[embedding:{target_field.value}]"

        async with track(
            self._telemetry, "VectorStore.search_by_embedding", target_field=target_field.value
        ) as metrics:
            vector = self._check_vector(embedding, "query embedding")
            if not self._documents:
                return self._empty(label, start)

            scored = []
            for entry in self._candidates(options.filter_fn):
                stored = entry.title_vector if target_field is SearchMode.TITLE else entry.content_vector
                scored.append(self._result(entry, cosine_similarity(vector, stored), target_field))

            results = self._rank(scored, top_k)
            metrics.retrieval_count = len(results)
            metrics.additional_info.update(results_count=len(results), total_documents=self.size())

        return SearchResults(
            results=results,
            telemetry=SearchTelemetry(
                latency_ms=(time.perf_counter() - start) * 1000,
                match_count=len(results),
                total_documents=self.size(),
                query=label,
                timestamp=time.time(),
            ),
        )


def build_vector_store(
    embedding_service: EmbeddingService,
    storage_type: str = "memory",
    telemetry: Optional[TelemetrySink] = None,
    **kwargs: Any,
) -> VectorStore:
    """
    Factory: create a VectorStore of the requested type.

    Args:
        embedding_service: Service used for document and query embeddings
        storage_type: "memory" (only supported backend currently)
        telemetry: Optional metrics sink
        **kwargs: ``VectorStoreConfig`` fields

    Raises:
        ValueError: Unknown storage type
    """
    if storage_type == "memory":
        config = VectorStoreConfig(storage_type=storage_type, **kwargs)
        return InMemoryVectorStore(embedding_service, config, telemetry=telemetry)
    raise ValueError(
        f"Unknown storage type: {storage_type!r}. Supported: {', '.join(SUPPORTED_STORAGE_TYPES)}"
    )
