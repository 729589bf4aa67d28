"""
Retrieval components: text extraction, chunking, field embeddings, ranking, caching,
ingestion and the query service.
"""

from .cache import SemanticResponseCache
from .chunker import ChunkingPolicy, ChunkRecord, DocumentChunker, split_long_text
from .embeddings import ChunkEmbeddingStore
from .extraction import ExtractedText, extract_text, guess_content_type, read_document
from .indexer import DocumentIndexer
from .search import RankingResult, SimilaritySearchEngine, cosine_similarity
from .service import AnswerResult, RetrievalService

__all__ = [
    "SemanticResponseCache",
    "ChunkingPolicy",
    "ChunkRecord",
    "DocumentChunker",
    "split_long_text",
    "ChunkEmbeddingStore",
    "ExtractedText",
    "extract_text",
    "guess_content_type",
    "read_document",
    "DocumentIndexer",
    "RankingResult",
    "SimilaritySearchEngine",
    "cosine_similarity",
    "AnswerResult",
    "RetrievalService",
]
