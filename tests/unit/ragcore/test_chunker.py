"""
Unit tests for structure-aware chunking.

Tests for:
- DocumentChunker section and sentence splitting
- Header detection heuristics
- Overlap between split passages
- Hard splitting of oversized sentences
"""

import pytest

from ragcore.retrieval.chunker import (
    ChunkingPolicy,
    DocumentChunker,
    clean_header,
    hard_split,
    is_header_line,
    overlap_tail,
    split_long_text,
    split_sections,
)


def sentences(count):
    return " ".join(f"Sentence number {i:02d} is here." for i in range(1, count + 1))


@pytest.fixture
def chunker():
    return DocumentChunker(ChunkingPolicy(max_chunk_size=100, overlap=40))


class TestChunkingPolicy:
    """Tests for ChunkingPolicy."""

    def test_defaults(self):
        """Test default size and overlap."""
        policy = ChunkingPolicy()

        assert policy.max_chunk_size == 1000
        assert policy.overlap == 100

    def test_overlap_must_be_smaller(self):
        """Test overlap equal to the size is rejected."""
        with pytest.raises(ValueError):
            DocumentChunker(ChunkingPolicy(max_chunk_size=100, overlap=100))

    def test_non_positive_size(self):
        """Test a zero size is rejected."""
        with pytest.raises(ValueError):
            ChunkingPolicy(max_chunk_size=0, overlap=0).validate()

    def test_from_dict(self):
        """Test creating a policy from a dictionary."""
        policy = ChunkingPolicy.from_dict({"max_chunk_size": 500})

        assert policy.max_chunk_size == 500
        assert policy.overlap == 100
        assert ChunkingPolicy.from_dict(policy.to_dict()) == policy

    def test_to_dict_fields(self):
        """Test only the size and overlap are serialized."""
        assert ChunkingPolicy(max_chunk_size=300, overlap=30).to_dict() == {
            "max_chunk_size": 300,
            "overlap": 30,
        }


class TestDocumentChunker:
    """Tests for DocumentChunker.chunk."""

    def test_short_document_single_chunk(self):
        """Test a document under the limit produces one chunk with index 0."""
        chunks = DocumentChunker().chunk("A short paragraph about retrieval.")

        assert len(chunks) == 1
        assert chunks[0].chunk_index == 0
        assert chunks[0].content == "A short paragraph about retrieval."
        assert chunks[0].header_context is None

    def test_one_sentence_over_limit_overlaps(self, chunker):
        """Test a document one sentence over the limit gives two overlapping chunks."""
        text = sentences(4)
        assert len(text) > 100

        chunks = chunker.chunk(text)

        assert len(chunks) == 2
        assert [c.chunk_index for c in chunks] == [0, 1]
        assert all(len(c.content) <= 100 for c in chunks)
        assert chunks[0].content.endswith("Sentence number 02 is here.")
        assert chunks[1].content.startswith("Sentence number 02 is here.")
        assert chunks[1].content.endswith("Sentence number 04 is here.")

    def test_long_sentences_still_overlap(self):
        """Test sentences too long to pair with the tail are hard split and still overlap."""
        first = "Alpha " + "a" * 50 + " alpha done."
        second = "Bravo " + "b" * 77 + " bravo done."

        chunks = DocumentChunker(ChunkingPolicy(max_chunk_size=100, overlap=20)).chunk(
            f"{first} {second}"
        )

        assert len(chunks) == 3
        assert all(len(c.content) <= 100 for c in chunks)
        assert chunks[0].content == first
        assert chunks[1].content.startswith("alpha done. Bravo ")
        assert chunks[2].content.startswith(chunks[1].content[-20:])
        assert chunks[2].content.endswith("bravo done.")

    def test_header_sections(self):
        """Test each header-delimited section becomes its own chunk."""
        text = (
            "# Introduction\n"
            "This guide explains the setup.\n"
            "\n"
            "## Installation\n"
            "Install the package first.\n"
        )

        chunks = DocumentChunker().chunk(text)

        assert [c.header_context for c in chunks] == ["Introduction", "Installation"]
        assert chunks[0].content == "This guide explains the setup."
        assert chunks[1].content == "Install the package first."

    def test_header_line_not_in_content(self):
        """Test header text is carried as context, not content."""
        chunks = DocumentChunker().chunk("Requisiti di Sistema\nIl sistema richiede 8 GB di RAM.")

        assert chunks[0].header_context == "Requisiti di Sistema"
        assert "Requisiti" not in chunks[0].content

    def test_preamble_before_first_header(self):
        """Test text before the first header has no header context."""
        chunks = DocumentChunker().chunk("Preface text.\n# Part One\nBody text.")

        assert chunks[0].header_context is None
        assert chunks[0].content == "Preface text."
        assert chunks[1].header_context == "Part One"

    def test_long_section_keeps_header(self, chunker):
        """Test an oversized section is split and every piece keeps its header."""
        text = "# Details\n" + sentences(4)

        chunks = chunker.chunk(text)

        assert len(chunks) == 2
        assert all(c.header_context == "Details" for c in chunks)

    def test_headers_only_document(self):
        """Test a document made only of headers still yields a chunk."""
        chunks = DocumentChunker().chunk("# Title\n## Subtitle")

        assert len(chunks) == 1
        assert chunks[0].header_context is None

    def test_notes_and_details_propagate(self):
        """Test notes and details are copied to every chunk; blanks become None."""
        text = "# A\nFirst body.\n# B\nSecond body."

        chunks = DocumentChunker().chunk(text, notes="Reviewed 2024", details="   ")

        assert len(chunks) == 2
        assert all(c.notes == "Reviewed 2024" for c in chunks)
        assert all(c.details is None for c in chunks)

    def test_empty_and_non_text_input(self):
        """Test blank or non-string content yields no chunks."""
        chunker = DocumentChunker()

        assert chunker.chunk("") == []
        assert chunker.chunk("   \n\t") == []
        assert chunker.chunk(None) == []
        assert chunker.chunk(b"bytes") == []

    def test_indices_contiguous(self, chunker):
        """Test indices run from 0 without gaps across sections."""
        text = "# One\n" + sentences(4) + "\n# Two\nShort body."

        chunks = chunker.chunk(text)

        assert [c.chunk_index for c in chunks] == list(range(len(chunks)))

    def test_to_chunk(self):
        """Test converting a record to an unsaved Chunk."""
        record = DocumentChunker().chunk("# H\nBody.", notes="n")[0]

        chunk = record.to_chunk(document_id=9)

        assert chunk.chunk_id is None
        assert chunk.document_id == 9
        assert chunk.header_context == "H"
        assert chunk.notes == "n"


class TestHeaderDetection:
    """Tests for is_header_line."""

    @pytest.mark.parametrize("line", [
        "# Introduction",
        "### Deep Section",
        "1.2 Installation Steps",
        "3. Configuration",
        "Chapter 4: Results",
        "Sezione 2 - Requisiti",
        "SYSTEM REQUIREMENTS",
        "Requisiti di Sistema",
        "Getting Started with the API",
    ])
    def test_headers(self, line):
        """Test lines recognized as headers."""
        assert is_header_line(line) is True

    @pytest.mark.parametrize("line", [
        "",
        "This is an ordinary sentence.",
        "the lowercase start",
        "Introduction ........ 3",
        "Overview .. 12",
        "Does It Work?",
        "A" * 101,
        "The quick brown fox jumps",
    ])
    def test_not_headers(self, line):
        """Test prose, table-of-contents and long lines are not headers."""
        assert is_header_line(line) is False

    def test_clean_header(self):
        """Test markdown and emphasis markers are stripped."""
        assert clean_header("## Setup ##") == "Setup"
        assert clean_header("**Bold Title**") == "Bold Title"

    def test_split_sections(self):
        """Test sections are returned in order with their bodies."""
        sections = split_sections("Intro.\n# A\nBody A.\n# B\nBody B.")

        assert sections == [(None, "Intro."), ("A", "Body A."), ("B", "Body B.")]


class TestSplitLongText:
    """Tests for split_long_text and its helpers."""

    def test_fits_in_one_passage(self):
        """Test text under the limit is returned whole."""
        assert split_long_text("One. Two.", max_size=100, overlap=10) == ["One. Two."]

    def test_oversized_sentence_hard_split(self):
        """Test a sentence longer than the limit is cut to size."""
        passages = split_long_text("x" * 2500, max_size=1000, overlap=100)

        assert len(passages) == 3
        assert len(passages[0]) == 899
        assert len(passages[1]) == 1000
        assert all(len(p) <= 1000 for p in passages)

    def test_hard_split_pieces_overlap(self):
        """Test every passage after the first repeats the end of the previous one."""
        passages = split_long_text("x" * 2500, max_size=1000, overlap=100)

        for previous, current in zip(passages, passages[1:]):
            assert current.startswith(previous[-100:] + " ")

    def test_zero_overlap_uses_full_size(self):
        """Test passages fill the whole size when nothing is carried."""
        passages = split_long_text("x" * 2500, max_size=1000, overlap=0)

        assert [len(p) for p in passages] == [1000, 1000, 500]

    def test_hard_split_prefers_spaces(self):
        """Test hard splitting breaks at a word boundary when possible."""
        assert hard_split("aaaa bbbb cccc", 10) == ["aaaa bbbb", "cccc"]

    def test_overlap_tail_starts_at_sentence(self):
        """Test the carried tail starts at a sentence boundary."""
        assert overlap_tail("First sentence. Second one here.", 20) == "Second one here."

    def test_overlap_tail_word_boundary(self):
        """Test the carried tail does not start mid-word."""
        tail = overlap_tail("alpha bravo charlie delta", 12)

        assert tail == "delta"

    def test_zero_overlap(self):
        """Test zero overlap carries nothing."""
        assert overlap_tail("Some text.", 0) == ""

    def test_invalid_arguments(self):
        """Test size and overlap are validated."""
        with pytest.raises(ValueError):
            split_long_text("text", max_size=0)
        with pytest.raises(ValueError):
            split_long_text("text", max_size=10, overlap=10)
