"""
Deterministic semantic-hash embeddings.

This is the fallback used whenever the embedding model is unavailable or
returns something unusable. The algorithm is fixed so that vectors are
bit-identical across implementations:

1. lower-case, split on runs of ASCII non-word characters, drop empties
2. count term frequencies
3. visit terms in sorted order
4. hash each term to a signed 32-bit int, seed an LCG with it and collect
   5 distinct positions ``abs(seed) % dim``; add the term frequency at each
5. L2-normalize
6. a zero vector becomes the fixed ``sin(i) / sqrt(dim)`` direction

Hash and LCG arithmetic follow JavaScript integer semantics (UTF-16 code
units, 32-bit wraparound, truncated remainder).
"""

from __future__ import annotations

import math
import re
import struct
from collections import Counter
from typing import Dict, List, Mapping

import numpy as np

POSITIONS_PER_FEATURE = 5

LCG_MULTIPLIER = 9301
LCG_INCREMENT = 49297
LCG_MODULUS = 233280

# JavaScript \W: anything outside [A-Za-z0-9_]
_NON_WORD = re.compile(r"\W+", re.ASCII)


def _to_int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - 0x100000000 if value >= 0x80000000 else value


def _truncated_mod(value: int, modulus: int) -> int:
    """Remainder whose sign follows the dividend (JavaScript ``%``)."""
    r = abs(value) % modulus
    return -r if value < 0 else r


def simple_hash(text: str) -> int:
    """
    32-bit signed string hash: ``h = h * 31 + unit`` over UTF-16 code units.

    Equivalent to ``(h << 5) - h + unit`` truncated to 32 bits after each step.
    """
    h = 0
    for (unit,) in struct.iter_unpack("<H", text.encode("utf-16-le", "surrogatepass")):
        h = _to_int32((h << 5) - h + unit)
    return h


def tokenize(text: str) -> List[str]:
    return [t for t in _NON_WORD.split(text.lower()) if t]


def term_frequencies(text: str) -> Dict[str, int]:
    return dict(Counter(tokenize(text)))


def feature_positions(feature_hash: int, dimension: int, count: int = POSITIONS_PER_FEATURE) -> List[int]:
    """
    Distinct vector positions for a feature, generated by the LCG.

    Duplicates are skipped, so generation continues until ``count`` unique
    positions exist. ``count`` is capped at ``dimension``.
    """
    if dimension < 1:
        raise ValueError(f"dimension must be >= 1, got {dimension}")
    count = min(count, dimension)

    positions: List[int] = []
    seen = set()
    seed = feature_hash
    while len(positions) < count:
        seed = _truncated_mod(seed * LCG_MULTIPLIER + LCG_INCREMENT, LCG_MODULUS)
        position = abs(seed) % dimension
        if position not in seen:
            seen.add(position)
            positions.append(position)
    return positions


def features_to_vector(features: Mapping[str, float], dimension: int) -> np.ndarray:
    """Scatter each feature's value onto its positions. Not normalized."""
    vector = np.zeros(dimension, dtype=np.float64)
    for name in sorted(features):
        value = features[name]
        if value == 0:
            continue
        for position in feature_positions(simple_hash(name), dimension):
            vector[position] += value
    return vector


def zero_norm_substitute(dimension: int) -> np.ndarray:
    """The fixed unit vector used in place of a zero vector."""
    vector = np.sin(np.arange(dimension, dtype=np.float64)) / math.sqrt(dimension)
    norm = math.sqrt(float(np.dot(vector, vector)))
    if norm == 0.0:
        # dimension 1: sin(0) == 0
        vector = np.zeros(dimension, dtype=np.float64)
        vector[0] = 1.0
        return vector
    return vector / norm


def l2_normalize(vector: np.ndarray) -> np.ndarray:
    """Scale to unit length; a zero vector becomes ``zero_norm_substitute``."""
    vector = np.asarray(vector, dtype=np.float64)
    norm = math.sqrt(float(np.dot(vector, vector)))
    if norm == 0.0:
        return zero_norm_substitute(vector.shape[0])
    return vector / norm


def semantic_embedding(text: str, dimension: int, mix_text_hash: bool = False) -> np.ndarray:
    """
    Embed ``text`` with the semantic-hash algorithm.

    With ``mix_text_hash`` the whole input string is hashed and scattered as
    one extra feature of weight 1, so texts sharing a bag of words still get
    different vectors. It is off by default to keep the base algorithm
    bit-compatible.
    """
    vector = features_to_vector(term_frequencies(text), dimension)
    if mix_text_hash and text:
        for position in feature_positions(simple_hash(text), dimension):
            vector[position] += 1.0
    return l2_normalize(vector)
