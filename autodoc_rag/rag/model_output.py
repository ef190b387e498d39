"""
Classification of raw embedding-model output.

Backends disagree on what they hand back: a flat vector, a batch whose first
row is the vector, or an object carrying the numbers under ``data``. Raw
output is first classified into one of three variants, then resolved to
either a unit vector or ``None`` (meaning: use the fallback).
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Optional, Union

import numpy as np

from autodoc_rag.rag.semantic_hash import l2_normalize

LOG = logging.getLogger("rag.model_output")


@dataclass(frozen=True)
class FlatOutput:
    """A plain vector, or the first row of a nested batch."""

    vector: np.ndarray


@dataclass(frozen=True)
class WrappedOutput:
    """A vector taken from an object's ``data`` field."""

    vector: np.ndarray


@dataclass(frozen=True)
class UnrecognizedOutput:
    raw: Any


ModelOutput = Union[FlatOutput, WrappedOutput, UnrecognizedOutput]


def _as_numeric(value: Any) -> Optional[np.ndarray]:
    try:
        arr = np.asarray(value, dtype=np.float64)
    except (TypeError, ValueError):
        return None
    return arr


def _is_array_like(value: Any) -> bool:
    return isinstance(value, (list, tuple, np.ndarray)) or hasattr(value, "__array__")


def classify_model_output(raw: Any) -> ModelOutput:
    """Map raw model output onto a ``ModelOutput`` variant."""
    # numpy arrays expose a ``.data`` buffer, so array-likes are checked first
    if _is_array_like(raw):
        arr = _as_numeric(raw)
        if arr is None or arr.size == 0:
            return UnrecognizedOutput(raw)
        if arr.ndim == 1:
            return FlatOutput(arr)
        if arr.ndim == 2:
            return FlatOutput(arr[0])
        return UnrecognizedOutput(raw)

    if isinstance(raw, Mapping):
        data = raw.get("data")
    else:
        data = getattr(raw, "data", None)

    if data is not None and _is_array_like(data):
        arr = _as_numeric(data)
        if arr is not None and arr.ndim == 1:
            return WrappedOutput(arr)
    return UnrecognizedOutput(raw)


def resolve_model_output(output: ModelOutput, dimension: int) -> Optional[np.ndarray]:
    """
    Turn a classified output into a unit vector of length ``dimension``.

    Returns ``None`` when the fallback should be used instead: unrecognized
    shape, empty, all-zero, non-finite, or wrong length.
    """
    if isinstance(output, UnrecognizedOutput):
        LOG.warning("Unexpected model output type %s; using fallback", type(output.raw).__name__)
        return None

    vector = output.vector
    if vector.size == 0 or not np.any(vector):
        return None
    if not np.all(np.isfinite(vector)):
        LOG.warning("Model output contains non-finite values; using fallback")
        return None
    if vector.shape[0] != dimension:
        LOG.warning("Model produced %d dimensions, expected %d; using fallback", vector.shape[0], dimension)
        return None
    return l2_normalize(vector)
