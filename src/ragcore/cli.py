"""
Command-line interface for the ragcore retrieval engine.

Usage:
    ragcore ingest docs/guide.md --notes "Reviewed 2024"
    ragcore ingest manual.pdf
    ragcore search "system requirements" --top-k 5 --threshold 0.5
    ragcore answer "What are the system requirements?"
    ragcore documents
    ragcore delete 3
    ragcore reindex 3
    ragcore repair 3
    ragcore cache stats|clean|clear
    ragcore providers
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .config.settings import RagConfig
from .core.exceptions import RagError
from .core.logging import configure_logging
from .core.types import ProviderType
from .engine import RagEngine
from .retrieval.extraction import read_document

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ragcore",
        description="Ingest documents and search them by semantic similarity",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to YAML config file (default: RAG_CONFIG or built-in defaults)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    ingest = sub.add_parser("ingest", help="Ingest a document file")
    ingest.add_argument("file", type=Path, help="Text, markdown, PDF or Word file to ingest")
    ingest.add_argument(
        "--content-type", default=None,
        help="MIME type of the file (guessed from the extension by default)",
    )
    ingest.add_argument("--path", default=None, help="Logical path stored with the document")
    ingest.add_argument("--notes", default=None, help="Notes attached to every chunk")
    ingest.add_argument("--details", default=None, help="Details attached to every chunk")

    search = sub.add_parser("search", help="Search ingested documents")
    search.add_argument("query", help="Query text")
    search.add_argument("--top-k", type=int, default=None, help="Number of results")
    search.add_argument("--threshold", type=float, default=None, help="Minimum similarity")
    search.add_argument(
        "--no-optional-fields",
        action="store_true",
        help="Ignore notes and details when scoring",
    )
    search.add_argument("--json", action="store_true", help="Print results as JSON")

    answer = sub.add_parser("answer", help="Answer a question from ingested documents")
    answer.add_argument("question", help="Question text")
    answer.add_argument("--top-k", type=int, default=None, help="Number of passages used")
    answer.add_argument("--threshold", type=float, default=None, help="Minimum similarity")
    answer.add_argument("--max-tokens", type=int, default=None, help="Completion length")

    sub.add_parser("documents", help="List documents")

    delete = sub.add_parser("delete", help="Delete a document")
    delete.add_argument("document_id", type=int)

    reindex = sub.add_parser("reindex", help="Rebuild a document's chunks and embeddings")
    reindex.add_argument("document_id", type=int)
    reindex.add_argument("--file", type=Path, default=None, help="Replacement text, markdown, PDF or Word file")

    repair = sub.add_parser("repair", help="Retry failed field embeddings of a document")
    repair.add_argument("document_id", type=int)

    cache = sub.add_parser("cache", help="Inspect or clean the response cache")
    cache.add_argument("action", choices=["stats", "clean", "clear"])

    sub.add_parser("providers", help="Show backend configuration status")

    return parser


async def _run(args: argparse.Namespace, engine: RagEngine) -> int:
    if args.command == "ingest":
        report = await engine.indexer.add_file(
            args.file,
            path=args.path,
            content_type=args.content_type,
            notes=args.notes,
            details=args.details,
        )
        print("\nIngestion complete:")
        print(f"  Document ID: {report.document_id}")
        print(f"  Status: {report.status.value}")
        print(f"  Chunks created: {report.chunks_created}")
        print(f"  Embeddings created: {report.embeddings_created}")
        print(f"  Failed fields: {report.embeddings_failed}")
        print(f"  Duration: {report.duration_seconds}s")
        for err in report.errors:
            print(f"    - {err}")
        return 0 if not report.errors else 1

    if args.command == "search":
        response = await engine.service.search(
            args.query,
            top_k=args.top_k,
            similarity_threshold=args.threshold,
            include_optional_fields=False if args.no_optional_fields else None,
        )
        if args.json:
            print(json.dumps(response.to_dict(), indent=2))
            return 0

        source = "cache" if response.from_cache else f"{response.total_candidates} candidates"
        flag = " [synthetic embeddings]" if response.synthetic else ""
        print(f"\n{len(response.hits)} results from {source}{flag}:")
        for rank, hit in enumerate(response.hits, start=1):
            header = f" > {hit.header_context}" if hit.header_context else ""
            fields = ", ".join(f.value for f in hit.matched_fields)
            print(f"  {rank}. {hit.score:.4f} {hit.file_name}{header} #{hit.chunk_index} ({fields})")
            print(f"     {hit.content[:160]}")
        return 0

    if args.command == "answer":
        result = await engine.service.answer(
            args.question,
            top_k=args.top_k,
            similarity_threshold=args.threshold,
            max_tokens=args.max_tokens,
        )
        print(result.answer)
        if result.sources:
            print("\nSources:")
            for number, hit in enumerate(result.sources, start=1):
                print(f"  [{number}] {hit.file_name} #{hit.chunk_index} ({hit.score:.4f})")
        return 0

    if args.command == "documents":
        documents = engine.store.list_documents()
        print(f"\n{len(documents)} documents:")
        for doc in documents:
            chunks = len(engine.store.list_chunks(doc.document_id))
            print(f"  {doc.document_id}: {doc.file_name} [{doc.status.value}] {chunks} chunks")
        return 0

    if args.command == "delete":
        engine.indexer.delete_document(args.document_id)
        print(f"Deleted document {args.document_id}")
        return 0

    if args.command == "reindex":
        content = read_document(args.file).text if args.file else None
        report = await engine.indexer.reindex_document(args.document_id, content=content)
        print(f"Document {report.document_id}: {report.status.value}, "
              f"{report.chunks_created} chunks, {report.embeddings_created} embeddings")
        return 0 if not report.errors else 1

    if args.command == "repair":
        report = await engine.indexer.repair_document(args.document_id)
        print(f"Document {report.document_id}: {report.embeddings_created} embeddings added, "
              f"{report.embeddings_failed} still failing")
        return 0 if not report.embeddings_failed else 1

    if args.command == "cache":
        if args.action == "stats":
            print(json.dumps(engine.cache.stats().to_dict(), indent=2))
        elif args.action == "clean":
            print(f"Removed {engine.cache.clean()} expired entries")
        else:
            print(f"Removed {engine.cache.clear()} entries")
        return 0

    if args.command == "providers":
        active = engine.gateway.provider_type
        available = engine.gateway.available_providers()
        for provider_type in ProviderType:
            status = "configured" if provider_type in available else "not configured"
            marker = "*" if provider_type == active else " "
            print(f" {marker} {provider_type.value}: {status}")
        return 0

    raise ValueError(f"Unknown command: {args.command}")


async def _main_async(args: argparse.Namespace) -> int:
    config = RagConfig(args.config)
    settings = config.settings

    level = logging.DEBUG if args.verbose else getattr(logging, settings.log_level, logging.INFO)
    configure_logging(level=level, structured=settings.structured_logging)

    async with RagEngine(settings) as engine:
        return await _run(args, engine)


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    args = build_parser().parse_args(argv)

    try:
        return asyncio.run(_main_async(args))
    except (RagError, ValueError, OSError) as e:
        logger.error(f"{args.command} failed: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
