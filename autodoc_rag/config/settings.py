"""Configuration management for autodoc-rag.

Loads settings from environment variables with sensible defaults.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Optional

from autodoc_rag.rag.embedding_provider import DEFAULT_MODEL_NAME
from autodoc_rag.rag.models import CombinedWeights
from autodoc_rag.rag.search import RAGServiceConfig

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def rag_config_from_env() -> RAGServiceConfig:
    """Build a ``RAGServiceConfig`` from ``AUTODOC_RAG_*`` variables."""
    model = os.getenv("AUTODOC_RAG_EMBEDDING_MODEL", DEFAULT_MODEL_NAME)
    return RAGServiceConfig(
        embedding_dimension=int(os.getenv("AUTODOC_RAG_EMBEDDING_DIMENSION", "384")),
        max_results=int(os.getenv("AUTODOC_RAG_MAX_RESULTS", "5")),
        similarity_threshold=float(os.getenv("AUTODOC_RAG_SIMILARITY_THRESHOLD", "0.7")),
        combined_weights=CombinedWeights(
            title=float(os.getenv("AUTODOC_RAG_TITLE_WEIGHT", "0.3")),
            content=float(os.getenv("AUTODOC_RAG_CONTENT_WEIGHT", "0.7")),
        ),
        search_mode=os.getenv("AUTODOC_RAG_SEARCH_MODE", "combined"),
        embedding_model=model or None,  # empty = semantic-hash only
    )


@dataclass
class AppConfig:
    """Top-level application configuration."""
    rag: RAGServiceConfig = field(default_factory=RAGServiceConfig)
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "AppConfig":
        return cls(
            rag=rag_config_from_env(),
            log_level=os.getenv("AUTODOC_RAG_LOG_LEVEL", "INFO").upper(),
        )


def configure_logging(level: Optional[str] = None) -> None:
    """Configure root logging; ``level`` defaults to ``AUTODOC_RAG_LOG_LEVEL``."""
    logging.basicConfig(
        level=(level or os.getenv("AUTODOC_RAG_LOG_LEVEL", "INFO")).upper(),
        format=LOG_FORMAT,
    )
