"""
Chunker - Split documents into structure-aware passages for retrieval.

Implements:
- Header detection (markdown, numbered, titled, all-caps and title-case lines)
- One passage per header-delimited section when it fits the size limit
- Sentence-aware splitting with a visible overlap for oversized text
- Hard splitting of single sentences longer than the limit
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from ..core.types import Chunk

logger = logging.getLogger(__name__)


MAX_HEADER_LENGTH = 100
MAX_TITLE_CASE_WORDS = 8

_MARKDOWN_HEADER = re.compile(r"^#{1,6}\s+\S")
_MARKDOWN_MARKERS = re.compile(r"^#{1,6}\s+|\s+#+\s*$")
_EMPHASIS_MARKERS = re.compile(r"^[*_]+|[*_]+$")
_NUMBERED_HEADER = re.compile(r"^\d+(\.\d+)*\.?\s+[A-Z]")
_TITLED_HEADER = re.compile(
    r"^(chapter|section|part|appendix|article|"
    r"capitolo|sezione|parte|appendice|articolo)\s+\S",
    re.IGNORECASE,
)
_TOC_LINE = re.compile(r"(\.{4,}|_{4,}|-{4,}|…{2,}|(\.\s){3,})|\.{2,}\s*\d+\s*$")
_TERMINAL_PUNCTUATION = (".", "!", "?", ";", ",")
_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+")
_SENTENCE_END = re.compile(r"[.!?]\s+")
_MINOR_WORDS = {
    "a", "an", "and", "as", "at", "by", "for", "in", "of", "on", "or",
    "the", "to", "with", "e", "di", "del", "della", "il", "la", "le", "per",
}


@dataclass
class ChunkingPolicy:
    """
    Policy for chunking documents into passages.

    Attributes:
        max_chunk_size: Maximum passage length in characters
        overlap: Characters carried from the end of one split passage into
            the next
    """
    max_chunk_size: int = 1000
    overlap: int = 100

    def validate(self) -> None:
        """
        Check the policy parameters.

        Raises:
            ValueError: If the size or overlap is out of range
        """
        if self.max_chunk_size <= 0:
            raise ValueError("max_chunk_size must be positive")
        if self.overlap < 0:
            raise ValueError("overlap must be non-negative")
        if self.overlap >= self.max_chunk_size:
            raise ValueError("overlap must be less than max_chunk_size")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "max_chunk_size": self.max_chunk_size,
            "overlap": self.overlap,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChunkingPolicy":
        """Create from dictionary."""
        return cls(
            max_chunk_size=data.get("max_chunk_size", 1000),
            overlap=data.get("overlap", 100),
        )


@dataclass
class ChunkRecord:
    """
    A passage produced by the chunker, before it is persisted.

    Attributes:
        chunk_index: Zero-based position within the document
        content: Passage text (never includes the header line)
        header_context: Nearest enclosing header, markdown markers stripped
        notes: Caller-supplied notes
        details: Caller-supplied details
    """
    chunk_index: int
    content: str
    header_context: Optional[str] = None
    notes: Optional[str] = None
    details: Optional[str] = None

    def to_chunk(self, document_id: int) -> Chunk:
        """Build an unsaved Chunk for a document."""
        return Chunk(
            chunk_id=None,
            document_id=document_id,
            chunk_index=self.chunk_index,
            content=self.content,
            header_context=self.header_context,
            notes=self.notes,
            details=self.details,
        )


class DocumentChunker:
    """
    Chunks document text into passages that keep their section header.

    Header-like lines delimit sections. A section that fits the size limit
    becomes one passage; a larger one is split at sentence boundaries with
    overlap. Text without any header is split by sentences as a whole.

    Example:
        >>> chunker = DocumentChunker(ChunkingPolicy(max_chunk_size=1000, overlap=100))
        >>> chunks = chunker.chunk("# Intro\\nSome text.", notes="reviewed")
        >>> chunks[0].header_context
        'Intro'
    """

    def __init__(self, policy: Optional[ChunkingPolicy] = None):
        """
        Initialize the chunker.

        Args:
            policy: Chunking policy (uses default if not provided)

        Raises:
            ValueError: If the policy is invalid
        """
        self.policy = policy or ChunkingPolicy()
        self.policy.validate()

    def chunk(
        self,
        content: Any,
        notes: Optional[str] = None,
        details: Optional[str] = None,
    ) -> List[ChunkRecord]:
        """
        Split content into passages.

        Args:
            content: Document text
            notes: Notes copied to every passage
            details: Details copied to every passage

        Returns:
            List of ChunkRecord objects with contiguous indices from 0; empty
            when the content is not text or is blank
        """
        if not isinstance(content, str):
            logger.warning(f"Cannot chunk non-text content of type {type(content).__name__}")
            return []
        if not content.strip():
            logger.debug("Nothing to chunk: content is empty")
            return []

        notes = notes if notes and notes.strip() else None
        details = details if details and details.strip() else None

        sections = split_sections(content)
        has_headers = any(header for header, _ in sections)

        pieces: List[Tuple[Optional[str], str]] = []
        if has_headers:
            for header, body in sections:
                if not body:
                    continue
                if len(body) <= self.policy.max_chunk_size:
                    pieces.append((header, body))
                    continue
                for text in split_long_text(body, self.policy.max_chunk_size, self.policy.overlap):
                    pieces.append((header, text))

        # Headers only, or no headers at all
        if not pieces:
            has_headers = False
            for text in split_long_text(content, self.policy.max_chunk_size, self.policy.overlap):
                pieces.append((None, text))

        chunks = [
            ChunkRecord(
                chunk_index=i,
                content=text,
                header_context=header,
                notes=notes,
                details=details,
            )
            for i, (header, text) in enumerate(pieces)
        ]

        mode = "header-based" if has_headers else "sentence-based"
        logger.debug(f"Created {len(chunks)} chunks using {mode} splitting")
        return chunks


def is_header_line(line: str) -> bool:
    """
    Decide whether a single line looks like a section header.

    Args:
        line: One line of text (surrounding whitespace is ignored)

    Returns:
        True for markdown headers, numbered headings, titled lines
        (Chapter/Section/...), short ALL-CAPS lines and short title-case
        lines. Prose lines, long lines and table-of-contents entries are
        never headers.
    """
    line = line.strip()
    if not line or len(line) > MAX_HEADER_LENGTH:
        return False

    if _MARKDOWN_HEADER.match(line):
        return True

    if _TOC_LINE.search(line):
        return False

    if line.endswith(_TERMINAL_PUNCTUATION):
        return False

    if _NUMBERED_HEADER.match(line) or _TITLED_HEADER.match(line):
        return True

    letters = [c for c in line if c.isalpha()]
    if len(letters) >= 3 and all(c.isupper() for c in letters):
        return True

    return _is_title_case(line)


def _is_title_case(line: str) -> bool:
    words = line.rstrip(":").split()
    if not words or len(words) > MAX_TITLE_CASE_WORDS:
        return False
    if not words[0][0].isupper():
        return False
    for word in words[1:]:
        if word.lower() in _MINOR_WORDS:
            continue
        if not word[0].isupper() and not word[0].isdigit():
            return False
    return True


def clean_header(line: str) -> str:
    """Strip markdown and emphasis markers from a header line."""
    text = _MARKDOWN_MARKERS.sub("", line.strip())
    return _EMPHASIS_MARKERS.sub("", text).strip()


def split_sections(content: str) -> List[Tuple[Optional[str], str]]:
    """
    Split text at header lines.

    Args:
        content: Document text

    Returns:
        List of (header, body) tuples in source order. Text before the first
        header has a header of None. Bodies are stripped and may be empty.
    """
    sections: List[Tuple[Optional[str], str]] = []
    header: Optional[str] = None
    body_lines: List[str] = []

    for line in content.split("\n"):
        if is_header_line(line):
            if header is not None or any(l.strip() for l in body_lines):
                sections.append((header, "\n".join(body_lines).strip()))
            header = clean_header(line)
            body_lines = []
        else:
            body_lines.append(line)

    sections.append((header, "\n".join(body_lines).strip()))
    return sections


def split_sentences(text: str) -> List[str]:
    """Split text after sentence-ending punctuation."""
    return [s.strip() for s in _SENTENCE_SPLIT.split(text) if s.strip()]


def hard_split(text: str, max_size: int) -> List[str]:
    """
    Split a single oversized sentence into pieces of at most ``max_size``.

    Breaks at the last space in the second half of the window when there is
    one, otherwise exactly at ``max_size`` characters.
    """
    pieces = []
    remaining = text.strip()
    while len(remaining) > max_size:
        cut = remaining.rfind(" ", 0, max_size + 1)
        if cut <= max_size // 2:
            cut = max_size
        pieces.append(remaining[:cut].rstrip())
        remaining = remaining[cut:].lstrip()
    if remaining:
        pieces.append(remaining)
    return pieces


def overlap_tail(text: str, overlap: int) -> str:
    """
    Trailing text of a passage to repeat at the start of the next one.

    Takes the last ``overlap`` characters and advances the start to the
    first sentence boundary inside that window, or else to the first word
    boundary, so the carried text does not start mid-word.
    """
    if overlap <= 0 or not text:
        return ""
    if len(text) <= overlap:
        return text.strip()

    window = text[-overlap:]
    preceding = text[-overlap - 1]
    if preceding.isspace() and text[:-overlap].rstrip().endswith((".", "!", "?")):
        return window.strip()

    match = _SENTENCE_END.search(window)
    if match and window[match.end():].strip():
        return window[match.end():].strip()

    if not preceding.isspace():
        space = window.find(" ")
        if space >= 0 and window[space:].strip():
            return window[space:].strip()

    return window.strip()


def split_long_text(text: str, max_size: int = 1000, overlap: int = 100) -> List[str]:
    """
    Split text into passages of at most ``max_size`` characters.

    Sentences are accumulated up to ``max_size - overlap - 1`` characters so
    that the tail of the previous passage (see overlap_tail) always fits in
    front of the next one. Every passage after the first starts with that
    tail.

    Args:
        text: Text to split
        max_size: Maximum passage length in characters
        overlap: Characters of overlap between consecutive passages

    Returns:
        List of passage strings in source order

    Raises:
        ValueError: If max_size or overlap is out of range
    """
    if max_size <= 0:
        raise ValueError("max_size must be positive")
    if overlap < 0:
        raise ValueError("overlap must be non-negative")
    if overlap >= max_size:
        raise ValueError("overlap must be less than max_size")

    if not text or not text.strip():
        return []

    budget = max_size - overlap - 1 if overlap else max_size
    budget = max(budget, 1)

    units: List[str] = []
    for sentence in split_sentences(text):
        if len(sentence) <= budget:
            units.append(sentence)
        else:
            units.extend(hard_split(sentence, budget))

    passages: List[str] = []
    body = ""

    def flush() -> None:
        passage = body
        if passages:
            tail = overlap_tail(passages[-1], overlap)
            room = max_size - 1 - len(body)
            if len(tail) > room:
                tail = tail[len(tail) - room:].lstrip() if room > 0 else ""
            if tail:
                passage = f"{tail} {body}"
        passages.append(passage)

    for unit in units:
        candidate = f"{body} {unit}" if body else unit
        if len(candidate) <= budget:
            body = candidate
            continue
        if body:
            flush()
        body = unit

    if body:
        flush()

    return passages
