"""CLI for knowledge-base management and search.

Usage::

    python -m lextrans.cli.knowledge add --file glossary.pdf --name "Contract glossary" \\
        --embedding-model <model-id> --public --wait
    python -m lextrans.cli.knowledge list --user alice
    python -m lextrans.cli.knowledge status <kb-id>
    python -m lextrans.cli.knowledge search --query "force majeure" --kb <kb-id> --top-k 3
    python -m lextrans.cli.knowledge share <kb-id> --private
    python -m lextrans.cli.knowledge delete <kb-id>

The vector index lives in memory, so ``search`` and ``status`` rebuild
embeddings for stored knowledge bases on start and wait (bounded by
``--timeout``) before searching or reporting.  Uploaded files are copied into ``UPLOAD_DIR``;
deleting a knowledge base removes that copy, never the original.
"""

from __future__ import annotations

import argparse
import asyncio
import shutil
import sys
import uuid
from pathlib import Path

from lextrans.config.settings import Settings
from lextrans.utils.errors import LexTransError


def _store_upload(file_path: Path, upload_dir: str) -> Path:
    """Copy a document into the upload directory under a unique name."""
    target_dir = Path(upload_dir)
    target_dir.mkdir(parents=True, exist_ok=True)
    target = target_dir / f"{uuid.uuid4()}{file_path.suffix.lower()}"
    shutil.copy2(file_path, target)
    return target


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


async def _handle_add(args: argparse.Namespace, app_settings: Settings) -> int:
    """Ingest a document as a new knowledge base."""
    from lextrans.main import app_lifespan
    from lextrans.providers.extraction.file_text_extractor import describe_file

    source = Path(args.file)
    if not source.is_file():
        print(f"Error: file not found: {source}", file=sys.stderr)
        return 1

    async with app_lifespan(app_settings, rebuild=False) as app:
        stored = _store_upload(source, app_settings.upload_dir)
        try:
            kb = await app.ingestion_service.ingest_file(
                name=args.name,
                description=args.description,
                source_file=describe_file(stored, original_name=source.name),
                embedding_model_id=args.embedding_model,
                owner_id=args.owner,
                is_public=args.public,
            )
        except LexTransError:
            stored.unlink(missing_ok=True)
            raise

        print(f"Created knowledge base {kb.id}")
        print(f"  Name:    {kb.name}")
        print(f"  Chunks:  {kb.chunk_count}")

        if args.wait:

            def _print_progress(kb_id: str, status) -> None:  # noqa: ANN001
                print(f"\r  Embedded {status.processed}/{status.total}", end="", flush=True)

            app.progress_tracker.register_listener(kb.id, _print_progress)
            status = await app.ingestion_service.wait_for_build(kb.id, timeout=args.timeout)
            print()
            print(f"  Status:  {status.phase.value} ({status.failed} failed)")
        else:
            print("  Not embedded yet; vectors are built whenever the index is loaded.")
    return 0


async def _handle_list(args: argparse.Namespace, app_settings: Settings) -> int:
    from lextrans.main import app_lifespan

    async with app_lifespan(app_settings, rebuild=False) as app:
        kbs = await app.ingestion_service.list_knowledge_bases(args.user, args.admin)

    if not kbs:
        print("No knowledge bases.")
        return 0
    print(f"{'ID':<38} {'Chunks':>6}  {'Public':<6}  Name")
    for kb in kbs:
        print(f"{kb.id:<38} {kb.chunk_count:>6}  {'yes' if kb.is_public else 'no':<6}  {kb.name}")
    return 0


async def _handle_status(args: argparse.Namespace, app_settings: Settings) -> int:
    from lextrans.main import app_lifespan

    # a fresh process has an empty index, so rebuild before reporting
    async with app_lifespan(app_settings, rebuild=True) as app:
        status = await app.ingestion_service.wait_for_build(args.kb_id, timeout=args.timeout)

    print(f"Build status for {args.kb_id}")
    print(f"  Phase:      {status.phase.value}")
    print(f"  Ready:      {status.ready}")
    print(f"  Processed:  {status.processed}/{status.total}")
    print(f"  Failed:     {status.failed}")
    return 0


async def _handle_search(args: argparse.Namespace, app_settings: Settings) -> int:
    from lextrans.main import app_lifespan

    async with app_lifespan(app_settings, rebuild=True) as app:
        await app.ingestion_service.wait_for_builds(timeout=args.timeout)
        results = await app.retrieval_service.search(
            args.query,
            candidate_kb_ids=args.kb,
            top_k=args.top_k,
            requester_id=args.user,
            is_admin=args.admin,
        )

    if not results:
        print("No matching chunks.")
        return 0
    for rank, result in enumerate(results, start=1):
        print(f"{rank}. [{result.similarity:.3f}] {result.knowledge_base_name} ({result.chunk_id})")
        print(f"   {result.content[:300]}")
    return 0


async def _handle_share(args: argparse.Namespace, app_settings: Settings) -> int:
    from lextrans.main import app_lifespan

    async with app_lifespan(app_settings, rebuild=False) as app:
        kb = await app.ingestion_service.set_visibility(
            args.kb_id, args.public, requester_id=args.user, is_admin=args.admin
        )
    print(f"{kb.name} is now {'public' if kb.is_public else 'private'}.")
    return 0


async def _handle_delete(args: argparse.Namespace, app_settings: Settings) -> int:
    from lextrans.main import app_lifespan

    async with app_lifespan(app_settings, rebuild=False) as app:
        deleted = await app.ingestion_service.delete(
            args.kb_id, requester_id=args.user, is_admin=args.admin
        )
    if not deleted:
        print(f"Knowledge base not found: {args.kb_id}", file=sys.stderr)
        return 1
    print(f"Deleted knowledge base {args.kb_id}")
    return 0


_HANDLERS = {
    "add": _handle_add,
    "list": _handle_list,
    "status": _handle_status,
    "search": _handle_search,
    "share": _handle_share,
    "delete": _handle_delete,
}


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


def _add_identity_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--user", default=None, help="Act as this user id")
    parser.add_argument("--admin", action="store_true", help="Act with admin rights")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m lextrans.cli.knowledge",
        description="Manage LexTrans knowledge bases.",
    )
    subparsers = parser.add_subparsers(dest="command", help="Knowledge-base commands")

    add_parser = subparsers.add_parser("add", help="Ingest a .txt/.md/.pdf/.docx document")
    add_parser.add_argument("--file", required=True, help="Path to the document")
    add_parser.add_argument("--name", required=True, help="Display name")
    add_parser.add_argument("--description", default=None, help="Optional description")
    add_parser.add_argument(
        "--embedding-model", required=True, dest="embedding_model",
        help="Id of the embedding model config to build with",
    )
    add_parser.add_argument("--owner", default=None, help="Owning user id")
    add_parser.add_argument("--public", action="store_true", help="Visible to every user")
    add_parser.add_argument("--wait", action="store_true", help="Wait for embeddings")
    add_parser.add_argument("--timeout", type=float, default=None, help="Max seconds to wait")

    list_parser = subparsers.add_parser("list", help="List visible knowledge bases")
    _add_identity_args(list_parser)

    status_parser = subparsers.add_parser("status", help="Rebuild embeddings and show status")
    status_parser.add_argument("kb_id")
    status_parser.add_argument(
        "--timeout", type=float, default=300.0,
        help="Max seconds to wait for the rebuild (default 300)",
    )

    search_parser = subparsers.add_parser("search", help="Similarity search")
    search_parser.add_argument("--query", required=True, help="Text to search for")
    search_parser.add_argument(
        "--kb", action="append", default=None,
        help="Restrict to this knowledge base id (repeatable)",
    )
    search_parser.add_argument("--top-k", type=int, default=None, dest="top_k")
    search_parser.add_argument(
        "--timeout", type=float, default=300.0,
        help="Max seconds to wait for embedding rebuilds (default 300)",
    )
    _add_identity_args(search_parser)

    share_parser = subparsers.add_parser("share", help="Change visibility")
    share_parser.add_argument("kb_id")
    visibility = share_parser.add_mutually_exclusive_group(required=True)
    visibility.add_argument("--public", dest="public", action="store_true")
    visibility.add_argument("--private", dest="public", action="store_false")
    _add_identity_args(share_parser)

    delete_parser = subparsers.add_parser("delete", help="Delete a knowledge base")
    delete_parser.add_argument("kb_id")
    _add_identity_args(delete_parser)

    return parser


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    app_settings = Settings()
    try:
        exit_code = asyncio.run(_HANDLERS[args.command](args, app_settings))
    except LexTransError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        exit_code = 1
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
