"""Index a local Markdown vault and run semantic queries against it.

Talks to an OpenAI-compatible embedding backend (a local Ollama server by
default).  The snapshot is written next to the vault as
``.noteindex/embeddings-cache.json`` so a second run starts from the cache.

Usage:
    uv run python scripts/index_vault.py ~/notes --model nomic-embed-text
    uv run python scripts/index_vault.py ~/notes --model nomic-embed-text \\
        --query "what did I write about tides?" --ignore archive --ignore templates
    uv run python scripts/index_vault.py ~/notes --model nomic-embed-text --sync
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from noteindex import (
    EmbeddingIndex,
    IndexConfig,
    IndexEvent,
    IndexEventType,
    LocalVault,
    NoteIndexError,
    OpenAIEmbedding,
    format_notes_context,
)


def _print_progress(event: IndexEvent) -> None:
    progress = event.data.get("progress") or {}
    if progress.get("is_running"):
        print(
            f"  {progress['processed']}/{progress['total']} documents"
            f" ({progress['errors']} errors)"
        )


def _print_completed(event: IndexEvent) -> None:
    stats = event.data.get("stats") or {}
    print(
        f"  done: {stats.get('total_embeddings', 0)} embeddings over"
        f" {stats.get('total_files', 0)} files, ~{stats.get('disk_usage_estimate')}"
    )


async def run(args: argparse.Namespace) -> int:
    vault_root = Path(args.vault).expanduser()
    overrides: dict[str, object] = {}
    if args.base_url:
        overrides["base_url"] = args.base_url
    if args.ignore:
        overrides["ignored_folders"] = tuple(args.ignore)
    config = IndexConfig.from_env(
        embedding_model=args.model,
        **overrides,
        cache_path=args.cache or vault_root / ".noteindex" / "embeddings-cache.json",
    )

    provider = OpenAIEmbedding.from_config(config)
    index = EmbeddingIndex(LocalVault(vault_root), provider, config=config)
    index.events.register(IndexEventType.STATS_UPDATED, _print_progress)
    index.events.register(IndexEventType.GENERATION_COMPLETED, _print_completed)

    print(f"Vault:   {vault_root}")
    print(f"Model:   {config.embedding_model} @ {config.base_url}")
    print(f"Cache:   {config.cache_path}")
    print()

    try:
        # ------------------------------------------------------------------
        # Build or restore the index
        # ------------------------------------------------------------------
        print("=" * 60)
        print("INDEX")
        print("=" * 60)
        await index.initialize()
        if args.rebuild:
            await index.rebuild()
        elif args.sync:
            result = await index.sync()
            print(f"  sync: +{result.added} ~{result.updated} -{result.removed}")

        stats = index.stats()
        print(
            f"  {stats.total_embeddings} embeddings, {stats.total_files} files,"
            f" {stats.embedding_dimensions} dimensions"
        )

        # ------------------------------------------------------------------
        # Queries
        # ------------------------------------------------------------------
        for query in args.query:
            print()
            print("=" * 60)
            print(f"QUERY: {query}")
            print("=" * 60)
            results = await index.search(query, top_k=args.top_k)
            if not results:
                print("  (no relevant notes)")
                continue
            for result in results:
                print(f"  {result.similarity:.3f}  {result.key}")
            if args.show_context:
                print()
                print(format_notes_context(results))
    except NoteIndexError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    finally:
        await index.cleanup()
        await provider.close()

    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Index a Markdown vault and query it")
    parser.add_argument("vault", help="Directory containing the notes")
    parser.add_argument("--model", required=True, help="Embedding model name")
    parser.add_argument(
        "--base-url",
        default=None,
        help="OpenAI-compatible endpoint (default: local Ollama)",
    )
    parser.add_argument("--cache", type=Path, default=None, help="Snapshot file location")
    parser.add_argument(
        "--ignore", action="append", default=[], help="Folder to skip (repeatable)"
    )
    parser.add_argument(
        "--query", action="append", default=[], help="Query to run (repeatable)"
    )
    parser.add_argument("--top-k", type=int, default=None, help="Results per query")
    parser.add_argument(
        "--show-context", action="store_true", help="Print the prompt context block"
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--sync", action="store_true", help="Reconcile with the vault")
    mode.add_argument("--rebuild", action="store_true", help="Drop the cache and re-embed")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
