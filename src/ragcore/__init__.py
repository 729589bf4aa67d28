"""
ragcore - Retrieval engine for retrieval-augmented generation.

Ingests documents into structure-aware chunks, embeds each chunk field through
a provider-agnostic gateway, and ranks stored chunks against a query with
multi-field cosine similarity. Recent query results are kept in a short-lived
exact-match cache.

Modules:
- core: Types, exceptions, logging, and vector utilities
- config: YAML/environment configuration
- providers: Embedding and completion backends plus the gateway
- storage: SQLite persistence for documents, chunks, embeddings, and cache
- retrieval: Chunker, embedding store, search engine, cache, indexer, service
"""

__version__ = "0.1.0"
