"""CLI for running translations and browsing history.

Usage::

    python -m lextrans.cli.translate run --text "The Lessee shall indemnify the Lessor."
    python -m lextrans.cli.translate run --file clause.txt --use-kb --kb <kb-id> --stream
    python -m lextrans.cli.translate history --limit 10 --search indemnify
    python -m lextrans.cli.translate show <translation-id>

``run`` prints the final translation on stdout; progress and per-model
results go to stderr so the output can be piped.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from lextrans.config.settings import Settings
from lextrans.models.model_config import ModelStage
from lextrans.models.translation import StageResult, TranslationRequest, TranslationResponse
from lextrans.utils.errors import LexTransError


def _print_stage_result(stage: ModelStage, result: StageResult) -> None:
    if result.error:
        outcome = f"ERROR {result.error}"
    else:
        outcome = f"ok, {result.tokens_used} tokens"
    print(
        f"[{stage.value}] {result.model_name} ({result.duration_ms} ms): {outcome}",
        file=sys.stderr,
    )


def _print_response(response: TranslationResponse, verbose: bool) -> None:
    if verbose:
        for label, results in (
            ("Stage 1 (translate)", response.stage1_results),
            ("Stage 2 (review)", response.stage2_results),
            ("Stage 3 (synthesize)", response.stage3_results),
        ):
            print(f"== {label}: {len(results)} result(s)", file=sys.stderr)
            for result in results:
                print(f"-- {result.model_name}", file=sys.stderr)
                print(result.error or result.output, file=sys.stderr)
        print(
            f"== total {response.total_duration_ms} ms summed, "
            f"{response.elapsed_ms} ms elapsed, id {response.id}",
            file=sys.stderr,
        )
    print(response.final_translation)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


async def _handle_run(args: argparse.Namespace, app_settings: Settings) -> int:
    from lextrans.main import app_lifespan

    source_text = Path(args.file).read_text(encoding="utf-8") if args.file else args.text
    request = TranslationRequest(
        source_text=source_text,
        use_knowledge_base=args.use_kb,
        knowledge_base_ids=args.kb,
        translation_model_ids=args.translation_models,
        review_model_ids=args.review_models,
        synthesis_model_ids=args.synthesis_models,
    )

    async with app_lifespan(app_settings, rebuild=args.use_kb) as app:
        if args.use_kb:
            await app.ingestion_service.wait_for_builds(timeout=args.timeout)
        response = await app.translation_pipeline.translate(
            request,
            requester_id=args.user,
            is_admin=args.admin,
            on_result=_print_stage_result if args.stream else None,
        )

    _print_response(response, args.verbose)
    return 0 if response.final_translation else 1


async def _handle_history(args: argparse.Namespace, app_settings: Settings) -> int:
    from lextrans.main import app_lifespan

    async with app_lifespan(app_settings, rebuild=False) as app:
        pipeline = app.translation_pipeline
        if args.search:
            entries = await pipeline.search_history(args.search, args.limit, args.user)
        else:
            entries = await pipeline.get_history(args.limit, args.user)

    if not entries:
        print("No translations.")
        return 0
    for entry in entries:
        source = entry.source_text.replace("\n", " ")
        print(f"{entry.id}  {entry.created_at:%Y-%m-%d %H:%M}  {source[:60]}")
    return 0


async def _handle_show(args: argparse.Namespace, app_settings: Settings) -> int:
    from lextrans.main import app_lifespan

    async with app_lifespan(app_settings, rebuild=False) as app:
        entry = await app.translation_pipeline.get_translation(args.translation_id)
    if entry is None:
        print(f"Translation not found: {args.translation_id}", file=sys.stderr)
        return 1
    _print_response(entry, verbose=True)
    return 0


_HANDLERS = {
    "run": _handle_run,
    "history": _handle_history,
    "show": _handle_show,
}


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m lextrans.cli.translate",
        description="Translate legal text through the LexTrans pipeline.",
    )
    subparsers = parser.add_subparsers(dest="command", help="Translation commands")

    run_parser = subparsers.add_parser("run", help="Translate text")
    source = run_parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--text", help="Source text")
    source.add_argument("--file", help="Read source text from a UTF-8 file")
    run_parser.add_argument(
        "--use-kb", action="store_true", dest="use_kb",
        help="Add knowledge-base context to Stage 1",
    )
    run_parser.add_argument(
        "--kb", action="append", default=None,
        help="Restrict context to this knowledge base id (repeatable)",
    )
    run_parser.add_argument(
        "--translation-model", action="append", default=None, dest="translation_models"
    )
    run_parser.add_argument("--review-model", action="append", default=None, dest="review_models")
    run_parser.add_argument(
        "--synthesis-model", action="append", default=None, dest="synthesis_models"
    )
    run_parser.add_argument("--stream", action="store_true", help="Print results as they arrive")
    run_parser.add_argument("--verbose", "-v", action="store_true", help="Print every stage")
    run_parser.add_argument(
        "--timeout", type=float, default=300.0,
        help="Max seconds to wait for knowledge-base embeddings (default 300)",
    )
    run_parser.add_argument("--user", default=None)
    run_parser.add_argument("--admin", action="store_true")

    history_parser = subparsers.add_parser("history", help="List past translations")
    history_parser.add_argument("--limit", type=int, default=50)
    history_parser.add_argument("--search", default=None, help="Filter by source text")
    history_parser.add_argument("--user", default=None)

    show_parser = subparsers.add_parser("show", help="Show one past translation")
    show_parser.add_argument("translation_id")

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
