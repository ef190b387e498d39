"""
RAG facade over the dual-embedding vector store.

``RAGService`` merges caller configuration with defaults, owns one embedding
service and one vector store, and exposes document CRUD plus three search
entry points: combined (the default), title-only and content-only.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields, replace
from typing import Any, Iterable, List, Mapping, Optional, Union

from autodoc_rag.rag.embedding_provider import (
    DEFAULT_MODEL_NAME,
    DefaultEmbeddingService,
    EmbeddingService,
    SemanticHashEmbeddingService,
)
from autodoc_rag.rag.models import (
    CombinedWeights,
    Document,
    DocumentLike,
    QueryOptions,
    SearchMode,
    SearchResults,
)
from autodoc_rag.rag.vector_store import VectorStore, build_vector_store
from autodoc_rag.telemetry import NullTelemetrySink, TelemetrySink, track

LOG = logging.getLogger("rag.search")


@dataclass
class RAGServiceConfig:
    """
    Configuration for the RAG service.

    ``embedding_model`` of ``None`` (or empty) selects the model-free
    semantic-hash embeddings.
    """

    embedding_dimension: int = 384
    max_results: int = 5
    similarity_threshold: float = 0.7
    combined_weights: CombinedWeights = field(default_factory=CombinedWeights)
    search_mode: SearchMode = SearchMode.COMBINED
    embedding_model: Optional[str] = DEFAULT_MODEL_NAME
    storage_type: str = "memory"

    def __post_init__(self) -> None:
        if self.embedding_dimension < 1:
            raise ValueError(f"embedding_dimension must be >= 1, got {self.embedding_dimension}")
        if self.max_results < 1:
            raise ValueError(f"max_results must be >= 1, got {self.max_results}")
        self.search_mode = SearchMode(self.search_mode)
        self.combined_weights = CombinedWeights.coerce(self.combined_weights)

    def merge(self, overrides: Mapping[str, Any]) -> "RAGServiceConfig":
        """
        Return a copy with ``overrides`` applied.

        A partial ``combined_weights`` mapping is merged over the current
        weights. Unknown keys raise ``ValueError``.
        """
        known = {f.name for f in fields(self)}
        unknown = set(overrides) - known
        if unknown:
            raise ValueError(f"Unknown RAG config keys: {sorted(unknown)}")

        changes = dict(overrides)
        if "combined_weights" in changes:
            changes["combined_weights"] = CombinedWeights.coerce(changes["combined_weights"], base=self.combined_weights)
        return replace(self, **changes)


ConfigLike = Union[RAGServiceConfig, Mapping[str, Any], None]


class RAGService:
    """
    Retrieval facade for the dual-embedding vector store.

    Usage::

        rag = RAGService({"similarity_threshold": 0.2}, embedding_model=None)
        await rag.add_documents(docs)
        hits = await rag.search_by_title("typescript performance")
    """

    def __init__(
        self,
        config: ConfigLike = None,
        *,
        embedding_service: Optional[EmbeddingService] = None,
        telemetry: Optional[TelemetrySink] = None,
        **overrides: Any,
    ) -> None:
        if isinstance(config, RAGServiceConfig):
            cfg = config
        else:
            cfg = RAGServiceConfig().merge(config or {})
        if overrides:
            cfg = cfg.merge(overrides)

        self._config = cfg
        self._telemetry = telemetry or NullTelemetrySink()

        if embedding_service is None:
            if cfg.embedding_model:
                embedding_service = DefaultEmbeddingService(
                    dimension=cfg.embedding_dimension,
                    model_name=cfg.embedding_model,
                    telemetry=self._telemetry,
                )
            else:
                embedding_service = SemanticHashEmbeddingService(cfg.embedding_dimension, telemetry=self._telemetry)
        self._embedder = embedding_service

        self._store: VectorStore = build_vector_store(
            embedding_service,
            storage_type=cfg.storage_type,
            telemetry=self._telemetry,
            embedding_dimension=cfg.embedding_dimension,
            max_results=cfg.max_results,
            similarity_threshold=cfg.similarity_threshold,
        )
        LOG.debug("RAGService ready: %s", cfg)

    @property
    def config(self) -> RAGServiceConfig:
        return self._config

    @property
    def embedding_service(self) -> EmbeddingService:
        return self._embedder

    @property
    def vector_store(self) -> VectorStore:
        return self._store

    # ── documents ────────────────────────────────────────────────────────────

    async def add_document(self, document: DocumentLike) -> None:
        await self._store.add_document(document)

    async def add_documents(self, documents: Iterable[DocumentLike]) -> None:
        await self._store.add_documents(documents)

    def get_document(self, doc_id: str) -> Optional[Document]:
        return self._store.get_document(doc_id)

    async def remove_document(self, doc_id: str) -> bool:
        return await self._store.remove_document(doc_id)

    def get_document_count(self) -> int:
        return self._store.size()

    def export_documents(self) -> List[Document]:
        return self._store.export_documents()

    async def load_documents(self, documents: Iterable[DocumentLike]) -> None:
        await self._store.load_documents(documents)

    # ── search ───────────────────────────────────────────────────────────────

    def _options(self, options: Optional[QueryOptions], overrides: Mapping[str, Any]) -> QueryOptions:
        base = replace(options) if options is not None else QueryOptions()
        if overrides:
            base = replace(base, **overrides)
        return QueryOptions(
            top_k=base.top_k or self._config.max_results,
            search_mode=base.search_mode or self._config.search_mode,
            combined_weights=base.combined_weights or self._config.combined_weights,
            filter_fn=base.filter_fn,
        )

    async def search(
        self,
        query: str,
        options: Optional[QueryOptions] = None,
        **overrides: Any,
    ) -> SearchResults:
        """
        Search with ``options`` (or keyword overrides of its fields).

        Unset fields fall back to the service configuration.
        """
        opts = self._options(options, overrides)
        async with track(
            self._telemetry, "RAGService.search", query=query, search_mode=opts.search_mode.value
        ) as metrics:
            results = await self._store.search(query, opts)
            metrics.retrieval_count = len(results.results)
        return results

    async def search_by_title(
        self,
        query: str,
        options: Optional[QueryOptions] = None,
        **overrides: Any,
    ) -> SearchResults:
        """Search against document titles only."""
        overrides["search_mode"] = SearchMode.TITLE
        return await self.search(query, options, **overrides)

    async def search_by_content(
        self,
        query: str,
        options: Optional[QueryOptions] = None,
        **overrides: Any,
    ) -> SearchResults:
        """Search against document contents only."""
        overrides["search_mode"] = SearchMode.CONTENT
        return await self.search(query, options, **overrides)
