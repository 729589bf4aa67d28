"""
Unit tests for vector and text helpers.

Tests for:
- Vector validation
- float32 BLOB encoding/decoding
- Text normalization
"""

import math
import struct

import pytest

from ragcore.core.exceptions import InvalidEmbeddingError
from ragcore.core.utils import decode_vector, encode_vector, normalize_text, validate_vector


class TestValidateVector:
    """Tests for validate_vector."""

    def test_returns_float_list(self):
        """Test integers are converted to floats."""
        assert validate_vector([1, 2, 3]) == [1.0, 2.0, 3.0]

    def test_empty_vector_rejected(self):
        """Test empty vectors are invalid."""
        with pytest.raises(InvalidEmbeddingError):
            validate_vector([])

    def test_nan_rejected(self):
        """Test NaN components are invalid."""
        with pytest.raises(InvalidEmbeddingError):
            validate_vector([0.1, math.nan])

    def test_infinity_rejected(self):
        """Test infinite components are invalid."""
        with pytest.raises(InvalidEmbeddingError):
            validate_vector([math.inf, 0.1])

    @pytest.mark.parametrize("vector", [[None, 1.0], ["x", 0.5], [[1.0], 2.0]])
    def test_non_numeric_rejected(self, vector):
        """Test components that are not numbers are invalid."""
        with pytest.raises(InvalidEmbeddingError):
            validate_vector(vector)

    def test_invalid_embedding_is_value_error(self):
        """Test callers catching ValueError also catch invalid vectors."""
        with pytest.raises(ValueError):
            validate_vector([])


class TestVectorEncoding:
    """Tests for encode_vector and decode_vector."""

    def test_encoding_is_little_endian_float32(self):
        """Test the byte layout is 4 bytes per component, little-endian."""
        data = encode_vector([1.0, -2.5])

        assert len(data) == 8
        assert data == struct.pack("<2f", 1.0, -2.5)

    def test_decode_restores_values(self):
        """Test decoding exactly representable values."""
        assert decode_vector(encode_vector([0.5, 0.25, -1.0])) == [0.5, 0.25, -1.0]

    def test_decode_rejects_partial_float(self):
        """Test a byte length that is not a multiple of 4 is invalid."""
        with pytest.raises(InvalidEmbeddingError):
            decode_vector(b"\x00\x00\x80\x3f\x00")

    def test_decode_rejects_empty(self):
        """Test empty data is invalid."""
        with pytest.raises(InvalidEmbeddingError):
            decode_vector(b"")

    def test_encode_rejects_non_finite(self):
        """Test non-finite vectors are never persisted."""
        with pytest.raises(InvalidEmbeddingError):
            encode_vector([math.nan])


class TestNormalizeText:
    """Tests for normalize_text."""

    def test_unifies_line_endings(self):
        """Test CRLF and CR become LF."""
        assert normalize_text("a\r\nb\rc") == "a\nb\nc"

    def test_collapses_inline_whitespace(self):
        """Test runs of spaces, tabs and non-breaking spaces collapse."""
        assert normalize_text("word \t\u00a0 other") == "word other"

    def test_strips_lines(self):
        """Test leading and trailing spaces on each line are removed."""
        assert normalize_text("  # Title  \n   body  ") == "# Title\nbody"

    def test_squeezes_blank_lines(self):
        """Test more than one blank line collapses to one."""
        assert normalize_text("a\n\n\n\n\nb") == "a\n\nb"

    def test_empty_input(self):
        """Test empty input gives empty output."""
        assert normalize_text("") == ""
