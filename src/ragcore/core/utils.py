"""
Core Utilities - Shared helpers for vectors and text.

Vectors are persisted as packed little-endian float32 values so that any
consumer reading the raw column can decode them without ragcore.
"""

import math
import re
import struct
from typing import List, Sequence

from .exceptions import InvalidEmbeddingError


FLOAT_SIZE = 4

_INLINE_WHITESPACE = re.compile(r"[ \t\f\v\u00a0]+")
_BLANK_LINE_RUN = re.compile(r"\n{3,}")


def validate_vector(vector: Sequence[float]) -> List[float]:
    """
    Check that a vector is usable for similarity scoring.

    Args:
        vector: Candidate embedding

    Returns:
        The vector as a list of floats

    Raises:
        InvalidEmbeddingError: If the vector is empty or has non-finite values
    """
    if vector is None or len(vector) == 0:
        raise InvalidEmbeddingError("Embedding vector cannot be empty")

    try:
        values = [float(v) for v in vector]
    except (TypeError, ValueError) as e:
        raise InvalidEmbeddingError(f"Embedding vector contains non-numeric values: {e}") from e
    if not all(math.isfinite(v) for v in values):
        raise InvalidEmbeddingError("Embedding vector contains non-finite values")

    return values


def encode_vector(vector: Sequence[float]) -> bytes:
    """
    Pack a vector as little-endian float32 bytes.

    Args:
        vector: Embedding values

    Returns:
        Packed bytes, 4 per component

    Raises:
        InvalidEmbeddingError: If the vector is empty or has non-finite values
    """
    values = validate_vector(vector)
    return struct.pack(f"<{len(values)}f", *values)


def decode_vector(data: bytes) -> List[float]:
    """
    Unpack little-endian float32 bytes into a vector.

    Args:
        data: Packed vector bytes

    Returns:
        List of float components

    Raises:
        InvalidEmbeddingError: If the byte length is not a multiple of 4 or empty
    """
    if not data:
        raise InvalidEmbeddingError("Embedding data cannot be empty")
    if len(data) % FLOAT_SIZE != 0:
        raise InvalidEmbeddingError(
            f"Embedding data length {len(data)} is not a multiple of {FLOAT_SIZE}"
        )
    count = len(data) // FLOAT_SIZE
    return list(struct.unpack(f"<{count}f", data))


def normalize_text(text: str) -> str:
    """
    Normalize extracted document text before chunking.

    Unifies line endings, collapses runs of spaces and tabs inside lines,
    strips trailing whitespace, and squeezes runs of blank lines to one.

    Args:
        text: Raw extracted text

    Returns:
        Normalized text
    """
    if not text:
        return ""

    text = text.replace("\r\n", "\n").replace("\r", "\n")
    lines = [_INLINE_WHITESPACE.sub(" ", line).strip() for line in text.split("\n")]
    text = "\n".join(lines)
    return _BLANK_LINE_RUN.sub("\n\n", text).strip()
