#!/usr/bin/env python3
"""
Knowledge Base Management Script

Maintains the vector index the assistant searches.

Commands:
    index <path> [<path> ...]   Chunk, embed and upsert markdown files or directories
    stats                       Show record counts and dimensions
    delete <source> [...]       Delete every record of a source file (e.g. guide.md)
    clear [--yes]               Delete every record in the configured namespace

Usage:
    python scripts/manage_index.py index docs/
    python scripts/manage_index.py stats
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from config.settings import Settings, load_settings
from rag_assistant.chunker import MarkdownChunker
from rag_assistant.embeddings import EmbeddingService
from rag_assistant.errors import AssistantError, ConfigurationError
from rag_assistant.indexer import DocumentIndexer
from rag_assistant.vector_store import VectorStore

logger = logging.getLogger(__name__)

# Chat-only credentials are not needed to maintain the index
INDEXING_IRRELEVANT = {"MISTRAL_API_KEY"}


def print_banner():
    print("\n" + "=" * 60)
    print("  📚 Knowledge Base Management")
    print("=" * 60 + "\n")


def build_indexer(settings: Settings) -> DocumentIndexer:
    embedding_service = EmbeddingService(settings.embedding)
    vector_store = VectorStore(settings.vector_store, dimension=embedding_service.dimension)
    return DocumentIndexer(
        embedding_service=embedding_service,
        vector_store=vector_store,
        chunker=MarkdownChunker(settings.chunking),
        namespace=settings.vector_store.pinecone_namespace,
    )


async def run_index(indexer: DocumentIndexer, paths) -> int:
    indexer.vector_store.ensure_index()
    total = 0
    for raw in paths:
        path = Path(raw)
        if path.is_dir():
            count = await indexer.index_directory(path)
        elif path.is_file():
            count = await indexer.index_file(path)
        else:
            print(f"⚠️  Skipping {path}: not found")
            continue
        print(f"✅ {path}: {count} chunks indexed")
        total += count
    print(f"\nIndexed {total} chunks in total")
    return 0


async def run_stats(indexer: DocumentIndexer) -> int:
    stats = await indexer.stats()
    print(json.dumps(stats, indent=2, default=str))
    return 0


async def run_delete(indexer: DocumentIndexer, sources) -> int:
    for source in sources:
        deleted = await indexer.delete_source(source)
        print(f"🗑️  {source}: {deleted} records deleted")
    return 0


async def run_clear(indexer: DocumentIndexer, confirmed: bool) -> int:
    if not confirmed:
        answer = input("Delete every record in the namespace? [y/N] ").strip().lower()
        if answer != "y":
            print("Aborted")
            return 1
    await indexer.clear()
    print("🗑️  Namespace cleared")
    return 0


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Manage the assistant's knowledge base")
    sub = parser.add_subparsers(dest="command", required=True)

    index_cmd = sub.add_parser("index", help="Index markdown files or directories")
    index_cmd.add_argument("paths", nargs="+")

    sub.add_parser("stats", help="Show index statistics")

    delete_cmd = sub.add_parser("delete", help="Delete the records of source files")
    delete_cmd.add_argument("sources", nargs="+")

    clear_cmd = sub.add_parser("clear", help="Delete every record in the namespace")
    clear_cmd.add_argument("--yes", action="store_true", help="Skip the confirmation prompt")

    return parser.parse_args(argv)


async def main(argv=None) -> int:
    args = parse_args(argv)

    settings = load_settings(validate=False)
    missing = [m for m in settings.missing_settings() if m not in INDEXING_IRRELEVANT]
    if missing:
        raise ConfigurationError([f"{name} is not set" for name in missing])

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    print_banner()

    indexer = build_indexer(settings)

    if args.command == "index":
        return await run_index(indexer, args.paths)
    if args.command == "stats":
        return await run_stats(indexer)
    if args.command == "delete":
        return await run_delete(indexer, args.sources)
    return await run_clear(indexer, args.yes)


if __name__ == "__main__":
    try:
        sys.exit(asyncio.run(main()))
    except AssistantError as e:
        print(f"❌ {e}")
        sys.exit(1)
