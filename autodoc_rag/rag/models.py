"""
Data models for documents, queries and search results.

``Document`` is a pydantic model because documents cross the API boundary
(export/load snapshots, dicts from callers). Everything internal to a search
is a plain dataclass.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, List, Mapping, Optional, Set, Union

import numpy as np
from pydantic import BaseModel, Field


class SearchMode(str, Enum):
    """Which stored vector(s) a query is compared against."""

    TITLE = "title"
    CONTENT = "content"
    COMBINED = "combined"


class Document(BaseModel):
    id: str
    title: str
    content: str
    tags: Set[str] = Field(default_factory=set)


DocumentLike = Union[Document, Mapping[str, Any]]


def as_document(value: DocumentLike) -> Document:
    """Validate a document or mapping into a private ``Document`` copy."""
    if isinstance(value, Document):
        return value.model_copy(deep=True)
    return Document.model_validate(value)


@dataclass
class IndexedDocument:
    """A document with its title and content embeddings."""

    document: Document
    title_vector: np.ndarray
    content_vector: np.ndarray
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class CombinedWeights:
    """Weights for combined search. Expected to sum to 1.0; not enforced."""

    title: float = 0.3
    content: float = 0.7

    @classmethod
    def coerce(
        cls,
        value: Union["CombinedWeights", Mapping[str, float], None],
        base: Optional["CombinedWeights"] = None,
    ) -> "CombinedWeights":
        """Build weights from a mapping, filling missing keys from ``base``."""
        base = base or cls()
        if value is None:
            return base
        if isinstance(value, CombinedWeights):
            return value
        unknown = set(value) - {"title", "content"}
        if unknown:
            raise ValueError(f"Unknown combined weight keys: {sorted(unknown)}")
        return cls(
            title=float(value.get("title", base.title)),
            content=float(value.get("content", base.content)),
        )


FilterFn = Callable[[Document], bool]


@dataclass
class QueryOptions:
    """
    Per-query options. Unset fields take the store's (or service's) defaults.

    ``filter_fn`` excludes documents before scoring; excluded documents never
    count towards ``top_k``.
    """

    top_k: Optional[int] = None
    search_mode: Optional[SearchMode] = None
    combined_weights: Optional[CombinedWeights] = None
    filter_fn: Optional[FilterFn] = None

    def __post_init__(self) -> None:
        if self.top_k is not None:
            if isinstance(self.top_k, bool) or not isinstance(self.top_k, int) or self.top_k < 1:
                raise ValueError(f"top_k must be a positive int, got {self.top_k!r}")
        if self.search_mode is not None:
            self.search_mode = SearchMode(self.search_mode)
        if self.combined_weights is not None:
            self.combined_weights = CombinedWeights.coerce(self.combined_weights)


@dataclass
class SearchResult:
    document: Document
    score: float
    matched_on: SearchMode


@dataclass
class SearchTelemetry:
    latency_ms: float
    match_count: int = 0
    total_documents: int = 0
    query: str = ""
    timestamp: float = 0.0


@dataclass
class SearchResults:
    """Results in descending score order, plus timing for the call."""

    results: List[SearchResult]
    telemetry: SearchTelemetry

    def __len__(self) -> int:
        return len(self.results)

    @property
    def ids(self) -> List[str]:
        return [r.document.id for r in self.results]
