"""
Embedding services: text -> fixed-dimension unit vector.

``DefaultEmbeddingService`` runs a sentence-transformers model, loaded lazily
and single-flight, and degrades to the deterministic semantic-hash algorithm
whenever the model output is unusable. ``SemanticHashEmbeddingService`` runs
the semantic-hash algorithm alone and needs no model.
"""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Callable, List, Optional, Sequence

import numpy as np

from autodoc_rag.errors import ModelLoadError
from autodoc_rag.rag.model_output import classify_model_output, resolve_model_output
from autodoc_rag.rag.semantic_hash import semantic_embedding
from autodoc_rag.telemetry import TelemetrySink, track

LOG = logging.getLogger("rag.embedding_provider")

DEFAULT_MODEL_NAME = "sentence-transformers/all-MiniLM-L6-v2"
DEFAULT_DIMENSION = 384
BATCH_GROUP_SIZE = 10

ModelLoader = Callable[[str], Any]


class EmbeddingService(ABC):
    """Abstract interface for text -> embedding vector conversion."""

    @abstractmethod
    async def embed_text(self, text: str) -> np.ndarray:
        """Embed one text as a unit vector of length ``dimension()``."""
        ...

    async def embed_batch(self, texts: Sequence[str]) -> List[np.ndarray]:
        """
        Embed many texts, preserving input order.

        Work is done in groups of ``BATCH_GROUP_SIZE``: members of a group run
        concurrently, groups run one after another.
        """
        results: List[np.ndarray] = []
        for start in range(0, len(texts), BATCH_GROUP_SIZE):
            group = texts[start : start + BATCH_GROUP_SIZE]
            results.extend(await asyncio.gather(*(self.embed_text(t) for t in group)))
        return results

    @abstractmethod
    def dimension(self) -> int:
        """Return the embedding dimensionality."""
        ...


class SemanticHashEmbeddingService(EmbeddingService):
    """Model-free embeddings from the semantic-hash algorithm."""

    def __init__(
        self,
        dimension: int = DEFAULT_DIMENSION,
        mix_text_hash: bool = False,
        telemetry: Optional[TelemetrySink] = None,
    ) -> None:
        if dimension < 1:
            raise ValueError(f"dimension must be >= 1, got {dimension}")
        self._dim = dimension
        self._mix_text_hash = mix_text_hash
        self._telemetry = telemetry

    async def embed_text(self, text: str) -> np.ndarray:
        async with track(
            self._telemetry,
            "SemanticHashEmbeddingService.embed_text",
            retrieval_count=1,
            text_length=len(text),
            dimension=self._dim,
        ):
            return semantic_embedding(text, self._dim, self._mix_text_hash)

    def dimension(self) -> int:
        return self._dim


class ModelState(str, Enum):
    UNLOADED = "unloaded"
    LOADING = "loading"
    LOADED = "loaded"
    FAILED = "failed"


def load_sentence_transformer(model_name: str) -> Any:
    """Default loader: a local sentence-transformers model."""
    try:
        from sentence_transformers import SentenceTransformer
    except ImportError:
        raise ImportError(
            "sentence-transformers is required for DefaultEmbeddingService. "
            "Install with: pip install sentence-transformers"
        )
    return SentenceTransformer(model_name)


class DefaultEmbeddingService(EmbeddingService):
    """
    Model-backed embeddings with a guaranteed fallback.

    The model is loaded on first use in a worker thread. Loading is
    single-flight: callers arriving while a load is in progress await the same
    task. A failed load raises ``ModelLoadError`` to every caller awaiting
    that attempt and leaves the service ready to retry on the next call.

    Once loaded, ``embed_text`` never raises: model exceptions and
    unrecognized, empty, zero or wrongly sized outputs all fall back to the
    semantic-hash embedding.

    Args:
        dimension: Output dimensionality (384 for all-MiniLM-L6-v2).
        model_name: HuggingFace model identifier.
        loader: ``model_name -> model``; the model must provide ``encode``.
        telemetry: Optional sink for per-call metrics.
        mix_text_hash: Passed through to the fallback algorithm.
        eager: Start loading immediately if an event loop is running.
    """

    def __init__(
        self,
        dimension: int = DEFAULT_DIMENSION,
        model_name: str = DEFAULT_MODEL_NAME,
        loader: Optional[ModelLoader] = None,
        telemetry: Optional[TelemetrySink] = None,
        mix_text_hash: bool = False,
        eager: bool = False,
    ) -> None:
        if dimension < 1:
            raise ValueError(f"dimension must be >= 1, got {dimension}")
        self._dim = dimension
        self._model_name = model_name
        self._loader = loader or load_sentence_transformer
        self._telemetry = telemetry
        self._mix_text_hash = mix_text_hash

        self._state = ModelState.UNLOADED
        self._model: Any = None
        self._load_task: Optional[asyncio.Task] = None

        if eager:
            try:
                asyncio.get_running_loop()
            except RuntimeError:
                LOG.debug("No running event loop; %s will load on first use", model_name)
            else:
                self._start_load()

    @property
    def model_name(self) -> str:
        return self._model_name

    @property
    def state(self) -> ModelState:
        return self._state

    def dimension(self) -> int:
        return self._dim

    # ── model lifecycle ──────────────────────────────────────────────────────

    def _start_load(self) -> asyncio.Task:
        self._state = ModelState.LOADING
        self._load_task = asyncio.ensure_future(self._load())
        # an eager load may finish with nobody awaiting it
        self._load_task.add_done_callback(lambda t: t.cancelled() or t.exception())
        return self._load_task

    async def _load(self) -> Any:
        LOG.info("Loading embedding model %s", self._model_name)
        start = time.perf_counter()
        try:
            model = await asyncio.to_thread(self._loader, self._model_name)
        except asyncio.CancelledError:
            if self._load_task is asyncio.current_task():
                self._state = ModelState.UNLOADED
                self._load_task = None
            LOG.warning("Loading of %s was cancelled", self._model_name)
            raise
        except Exception as exc:
            self._state = ModelState.FAILED
            self._load_task = None
            LOG.error("Failed to load embedding model %s: %s", self._model_name, exc)
            raise ModelLoadError(f"could not load embedding model {self._model_name!r}: {exc}") from exc

        self._model = model
        self._state = ModelState.LOADED
        self._load_task = None
        LOG.info("Loaded %s in %.0fms", self._model_name, (time.perf_counter() - start) * 1000)
        return model

    async def ensure_model_loaded(self) -> Any:
        """Return the loaded model, starting or joining the load as needed."""
        if self._state is ModelState.LOADED:
            return self._model
        task = self._load_task
        # a task left over from a finished or different event loop cannot be joined
        if task is None or task.done() or task.get_loop() is not asyncio.get_running_loop():
            task = self._start_load()
        # shield: one waiter being cancelled must not cancel the shared load
        return await asyncio.shield(task)

    # ── embedding ────────────────────────────────────────────────────────────

    async def embed_text(self, text: str) -> np.ndarray:
        async with track(
            self._telemetry,
            "DefaultEmbeddingService.embed_text",
            retrieval_count=1,
            text_length=len(text),
            dimension=self._dim,
            model=self._model_name,
        ):
            model = await self.ensure_model_loaded()
            return await self._generate(model, text)

    async def embed_batch(self, texts: Sequence[str]) -> List[np.ndarray]:
        async with track(
            self._telemetry,
            "DefaultEmbeddingService.embed_batch",
            retrieval_count=len(texts),
            batch_size=len(texts),
            dimension=self._dim,
            model=self._model_name,
        ):
            model = await self.ensure_model_loaded()
            results: List[np.ndarray] = []
            for start in range(0, len(texts), BATCH_GROUP_SIZE):
                group = texts[start : start + BATCH_GROUP_SIZE]
                results.extend(await asyncio.gather(*(self._generate(model, t) for t in group)))
            return results

    async def _generate(self, model: Any, text: str) -> np.ndarray:
        try:
            raw = await asyncio.to_thread(self._encode, model, text.strip())
        except Exception:
            LOG.exception("Embedding model failed; using semantic-hash fallback")
            return self._fallback(text)

        vector = resolve_model_output(classify_model_output(raw), self._dim)
        if vector is None:
            return self._fallback(text)
        return vector

    @staticmethod
    def _encode(model: Any, text: str) -> Any:
        return model.encode([text], show_progress_bar=False, convert_to_numpy=True)

    def _fallback(self, text: str) -> np.ndarray:
        return semantic_embedding(text, self._dim, self._mix_text_hash)
