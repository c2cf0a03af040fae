"""Standalone CLI for managing the kbchat knowledge base.

Usage::

    python -m kbchat.cli.ingest file docs/guide.md
    python -m kbchat.cli.ingest file notes.txt --title "Meeting notes"
    python -m kbchat.cli.ingest directory docs/ --pattern "*.md"
    python -m kbchat.cli.ingest documents
    python -m kbchat.cli.ingest stats

Files are ingested in-process with the same chunker, embedding provider and
search engine the API uses; no server needs to be running.  Each file gets
its own task so failures are reported per file.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
import uuid
from pathlib import Path
from typing import Any

from kbchat.models.rag import IngestionResult
from kbchat.models.task import TaskState
from kbchat.utils.errors import DocumentReadError, KBChatError

_MARKDOWN_SUFFIXES = (".md", ".markdown")
_DEFAULT_PATTERNS = ("*.md", "*.markdown", "*.txt")


def _build_components() -> dict[str, Any]:
    """Assemble providers and services from environment and config."""
    from kbchat.main import build_components, config, settings

    return build_components(settings, config)


async def _close(components: dict[str, Any]) -> None:
    await components["http_client"].aclose()


async def _ingest_path(
    path: Path,
    components: dict[str, Any],
    title: str | None = None,
) -> IngestionResult:
    """Read and ingest one file through the ingestion pipeline.

    A file that cannot be read or parsed fails its task here, before the
    pipeline sees it.
    """
    lifecycle = components["task_lifecycle"]
    pipeline = components["ingestion_pipeline"]
    task_id = str(uuid.uuid4())
    await lifecycle.create(task_id)
    is_markdown = path.suffix.lower() in _MARKDOWN_SUFFIXES

    try:
        if is_markdown:
            document = components["parser"].parse_file(path)
        else:
            text = _read_text(path)
    except KBChatError as exc:
        await lifecycle.fail(task_id, str(exc))
        return IngestionResult(
            task_id=task_id,
            title=path.name,
            status=TaskState.FAILED.value,
            error=str(exc),
        )

    if not is_markdown:
        return await pipeline.process_text(text, title or path.name, task_id)

    if title:
        document = document.model_copy(
            update={
                "title": title,
                "metadata": document.metadata.model_copy(update={"title": title}),
            }
        )
    return await pipeline.process_document(document, task_id)


def _read_text(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8", errors="replace")
    except OSError as exc:
        raise DocumentReadError(f"Cannot read {path}: {exc}") from exc


def _print_result(result: IngestionResult) -> None:
    if result.status == TaskState.SUCCEEDED:
        print(f"  [ok]     {result.title}")
        print(f"           chunks={result.chunks_created} tokens={result.total_tokens} "
              f"time={result.ingestion_time:.2f}s")
    else:
        print(f"  [failed] {result.title}: {result.error}")


async def _handle_file(args: argparse.Namespace) -> int:
    path = Path(args.path)
    if not path.is_file():
        print(f"Error: {path} is not a file", file=sys.stderr)
        return 1

    components = _build_components()
    try:
        await components["search_engine"].ensure_index()
        print(f"Ingesting file: {path}")
        result = await _ingest_path(path, components, title=args.title)
        _print_result(result)
        return 0 if result.status == TaskState.SUCCEEDED else 1
    finally:
        await _close(components)


async def _handle_directory(args: argparse.Namespace) -> int:
    root = Path(args.path)
    if not root.is_dir():
        print(f"Error: {root} is not a directory", file=sys.stderr)
        return 1

    patterns = [args.pattern] if args.pattern else list(_DEFAULT_PATTERNS)
    paths = sorted({p for pattern in patterns for p in root.rglob(pattern) if p.is_file()})
    if not paths:
        print(f"No matching files under {root}")
        return 0

    components = _build_components()
    results: list[IngestionResult] = []
    try:
        await components["search_engine"].ensure_index()
        print(f"Ingesting directory: {root} ({len(paths)} files)")
        for path in paths:
            result = await _ingest_path(path, components)
            _print_result(result)
            results.append(result)
    finally:
        await _close(components)

    succeeded = [r for r in results if r.status == TaskState.SUCCEEDED]
    print("\nDirectory ingestion complete:")
    print(f"  Files processed: {len(results)}")
    print(f"  Succeeded:       {len(succeeded)}")
    print(f"  Total chunks:    {sum(r.chunks_created for r in succeeded)}")
    print(f"  Total tokens:    {sum(r.total_tokens for r in succeeded)}")
    print(f"  Total time:      {sum(r.ingestion_time for r in results):.2f}s")
    return 0 if len(succeeded) == len(results) else 1


async def _handle_documents(args: argparse.Namespace) -> int:
    components = _build_components()
    try:
        documents = await components["search_engine"].list_documents()
    finally:
        await _close(components)

    if args.json:
        print(json.dumps([d.model_dump(mode="json") for d in documents], indent=2))
        return 0
    if not documents:
        print("No documents indexed.")
        return 0
    print(f"{'Source':<50} {'Chunks':>6}  Created")
    print("-" * 80)
    for doc in documents:
        created = doc.created_at or "-"
        print(f"{doc.title[:50]:<50} {doc.chunk_count:>6}  {created}")
    return 0


async def _handle_stats(args: argparse.Namespace) -> int:  # noqa: ARG001
    components = _build_components()
    try:
        stats = await components["search_engine"].get_stats()
    finally:
        await _close(components)

    print("Index Statistics")
    print("=" * 40)
    print(json.dumps(stats, indent=2))
    return 0


def _build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the ingestion CLI."""
    parser = argparse.ArgumentParser(
        prog="python -m kbchat.cli.ingest",
        description="Ingest documents into the kbchat knowledge base.",
    )
    subparsers = parser.add_subparsers(dest="command")

    file_parser = subparsers.add_parser("file", help="Ingest one markdown or text file")
    file_parser.add_argument("path", help="Path to the file")
    file_parser.add_argument("--title", default=None, help="Override the document title")

    dir_parser = subparsers.add_parser("directory", help="Ingest every matching file in a directory")
    dir_parser.add_argument("path", help="Directory to walk recursively")
    dir_parser.add_argument(
        "--pattern",
        default=None,
        help="Glob pattern (default: *.md, *.markdown and *.txt)",
    )

    docs_parser = subparsers.add_parser("documents", help="List indexed documents")
    docs_parser.add_argument("--json", action="store_true", help="Print JSON instead of a table")

    subparsers.add_parser("stats", help="Print search index statistics")
    return parser


_HANDLERS = {
    "file": _handle_file,
    "directory": _handle_directory,
    "documents": _handle_documents,
    "stats": _handle_stats,
}


def main(argv: list[str] | None = None) -> None:
    """CLI entry point for the ingestion tool."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    handler = _HANDLERS.get(args.command)
    if handler is None:
        parser.print_help()
        sys.exit(1)

    try:
        exit_code = asyncio.run(handler(args))
    except KBChatError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        exit_code = 1
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
