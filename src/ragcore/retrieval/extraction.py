"""
Extraction - Turn uploaded files into plain text for chunking.

Supported formats:
- Plain text and Markdown (strict UTF-8)
- PDF, page by page (pypdf)
- Word .docx, paragraphs and tables in body order (python-docx)
- Legacy Word .doc, only when the file is really a .docx package
"""

import io
import logging
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

import docx
from docx.opc.exceptions import PackageNotFoundError
from docx.table import Table
from pypdf import PdfReader
from pypdf.errors import PyPdfError

from ..core.exceptions import ExtractionError, UnsupportedContentTypeError
from ..core.utils import normalize_text

logger = logging.getLogger(__name__)


TEXT_PLAIN = "text/plain"
TEXT_MARKDOWN = "text/markdown"
PDF = "application/pdf"
DOCX = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
DOC = "application/msword"

SUPPORTED_CONTENT_TYPES = (TEXT_PLAIN, TEXT_MARKDOWN, PDF, DOCX, DOC)

_EXTENSIONS = {
    ".txt": TEXT_PLAIN,
    ".text": TEXT_PLAIN,
    ".md": TEXT_MARKDOWN,
    ".markdown": TEXT_MARKDOWN,
    ".pdf": PDF,
    ".docx": DOCX,
    ".doc": DOC,
}


@dataclass
class ExtractedText:
    """
    Text read from a file.

    Attributes:
        text: Extracted text
        content_type: MIME type the text was extracted as
        size: Size of the source file in bytes
    """
    text: str
    content_type: str
    size: int


def guess_content_type(file_name: str) -> Optional[str]:
    """Content type for a file name's extension, or None if unknown."""
    return _EXTENSIONS.get(Path(file_name).suffix.lower())


def is_supported_content_type(content_type: Optional[str]) -> bool:
    """Whether a text extractor exists for the content type."""
    if not content_type:
        return False
    return _base_type(content_type) in SUPPORTED_CONTENT_TYPES


def _base_type(content_type: str) -> str:
    return content_type.split(";", 1)[0].strip().lower()


def extract_text(data: bytes, content_type: Optional[str], file_name: str = "") -> str:
    """
    Extract text from file bytes.

    Args:
        data: Raw file content
        content_type: MIME type of the file (parameters such as charset are ignored)
        file_name: Name used in log and error messages

    Returns:
        Extracted text (may be empty for files without text)

    Raises:
        UnsupportedContentTypeError: If the content type has no extractor
        ExtractionError: If the file cannot be decoded or parsed
    """
    if not is_supported_content_type(content_type):
        raise UnsupportedContentTypeError(content_type, file_name)

    kind = _base_type(content_type)
    logger.info(f"Extracting text from {file_name or 'upload'} ({kind}, {len(data)} bytes)")

    if kind in (TEXT_PLAIN, TEXT_MARKDOWN):
        return _decode_text(data, file_name)
    if kind == PDF:
        return _extract_pdf(data, file_name)
    if kind == DOCX:
        return _extract_docx(data, file_name)
    return _extract_doc(data, file_name)


def read_document(path: Union[str, Path], content_type: Optional[str] = None) -> ExtractedText:
    """
    Read a file from disk and extract its text.

    Args:
        path: File to read
        content_type: MIME type (guessed from the extension if not given)

    Returns:
        ExtractedText with the text, content type and file size

    Raises:
        UnsupportedContentTypeError: If the type is unknown or unsupported
        ExtractionError: If the file cannot be read, decoded or parsed
    """
    path = Path(path)
    content_type = content_type or guess_content_type(path.name)
    if not is_supported_content_type(content_type):
        raise UnsupportedContentTypeError(content_type, path.name)

    try:
        data = path.read_bytes()
    except OSError as e:
        raise ExtractionError(f"Cannot read {path}: {e}", path.name) from e

    text = extract_text(data, content_type, path.name)
    return ExtractedText(text=text, content_type=_base_type(content_type), size=len(data))


def _decode_text(data: bytes, file_name: str) -> str:
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise ExtractionError(
            f"{file_name or 'Text file'} is not valid UTF-8 (byte {e.start})",
            file_name,
        ) from e


def _extract_pdf(data: bytes, file_name: str) -> str:
    try:
        reader = PdfReader(io.BytesIO(data))
        pages = [page.extract_text() or "" for page in reader.pages]
    except (PyPdfError, ValueError, KeyError) as e:
        logger.error(f"Error extracting text from PDF {file_name}: {e}")
        raise ExtractionError(f"Failed to extract text from PDF: {e}", file_name) from e

    texts = [normalize_text(p) for p in pages if p.strip()]
    logger.debug(f"PDF {file_name}: {len(texts)} of {len(pages)} pages contain text")
    return "\n".join(texts)


def _extract_docx(data: bytes, file_name: str) -> str:
    try:
        document = docx.Document(io.BytesIO(data))
    except (PackageNotFoundError, zipfile.BadZipFile, KeyError, ValueError) as e:
        raise ExtractionError(f"Failed to open Word document: {e}", file_name) from e

    lines = []
    for block in document.iter_inner_content():
        if isinstance(block, Table):
            for row in block.rows:
                lines.append("\t".join(cell.text for cell in row.cells))
        else:
            lines.append(block.text)
    return "\n".join(lines)


def _extract_doc(data: bytes, file_name: str) -> str:
    # Some .doc uploads are really OOXML packages
    try:
        return _extract_docx(data, file_name)
    except ExtractionError as e:
        logger.warning(f"{file_name} is a legacy Word document: {e}")
        raise ExtractionError(
            "Legacy Word (.doc) files are not supported; save the document as .docx or .txt",
            file_name,
        ) from e
