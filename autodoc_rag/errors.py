"""
Exception hierarchy for the retrieval core.

Embedding failures after the model is loaded never surface as exceptions;
they are recovered by the semantic-hash fallback. What remains here are the
errors a caller can actually act on.
"""

from __future__ import annotations


class RetrievalError(Exception):
    """Base exception for the retrieval core."""

    pass


class DocumentValidationError(RetrievalError, ValueError):
    """A document (or a batch of documents) was rejected before indexing."""

    pass


class DimensionMismatchError(DocumentValidationError):
    """A vector or configured dimension disagrees with the embedding service."""

    pass


class ModelLoadError(RetrievalError):
    """The embedding model could not be loaded. A later call may retry."""

    pass
