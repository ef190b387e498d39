"""autodoc-rag: dual-embedding document retrieval."""

from autodoc_rag.errors import DimensionMismatchError, DocumentValidationError, ModelLoadError, RetrievalError
from autodoc_rag.rag import (
    Document,
    QueryOptions,
    RAGService,
    RAGServiceConfig,
    SearchMode,
    SearchResults,
)
from autodoc_rag.telemetry import InMemoryTelemetrySink, NullTelemetrySink, TelemetrySink

__version__ = "0.1.0"

__all__ = [
    "DimensionMismatchError",
    "Document",
    "DocumentValidationError",
    "InMemoryTelemetrySink",
    "ModelLoadError",
    "NullTelemetrySink",
    "QueryOptions",
    "RAGService",
    "RAGServiceConfig",
    "RetrievalError",
    "SearchMode",
    "SearchResults",
    "TelemetrySink",
]
