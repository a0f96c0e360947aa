"""CLI for model-configuration management.

Usage::

    python -m lextrans.cli.models list --stage translation
    python -m lextrans.cli.models add --name "DeepSeek V3" --stage translation \\
        --endpoint https://api.deepseek.com/chat/completions --model-id deepseek-chat \\
        --api-key-env DEEPSEEK_API_KEY --temperature 0.3 --public
    python -m lextrans.cli.models test <model-id>
    python -m lextrans.cli.models disable <model-id> --user alice
    python -m lextrans.cli.models reorder <id-1> <id-2> <id-3>
    python -m lextrans.cli.models delete <model-id>
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
import uuid

from lextrans.config.settings import Settings
from lextrans.models.model_config import ModelConfig, ModelStage
from lextrans.utils.errors import LexTransError, ModelNotFoundError


def _mask(api_key: str) -> str:
    if not api_key:
        return "-"
    return f"{api_key[:4]}...{api_key[-4:]}" if len(api_key) > 12 else "****"


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


async def _handle_list(args: argparse.Namespace, app_settings: Settings) -> int:
    from lextrans.main import app_lifespan

    stage = ModelStage(args.stage) if args.stage else None
    async with app_lifespan(app_settings, rebuild=False) as app:
        models = await app.model_registry.list_models(args.user, args.admin, stage)

    if not models:
        print("No models configured.")
        return 0
    print(f"{'ID':<38} {'Stage':<12} {'On':<3} {'Key':<12} Name (model)")
    for model in models:
        print(
            f"{model.id:<38} {model.stage.value:<12} {'y' if model.enabled else 'n':<3} "
            f"{_mask(model.api_key):<12} {model.name} ({model.model_id})"
        )
    return 0


def _config_from_args(args: argparse.Namespace) -> ModelConfig:
    api_key = args.api_key or (os.environ.get(args.api_key_env, "") if args.api_key_env else "")
    return ModelConfig(
        id=str(uuid.uuid4()),
        name=args.name,
        stage=ModelStage(args.stage),
        api_endpoint=args.endpoint,
        api_key=api_key,
        model_id=args.model_id,
        system_prompt=args.system_prompt or "",
        temperature=args.temperature,
        max_tokens=args.max_tokens,
        top_p=args.top_p,
        custom_params=json.loads(args.custom_params) if args.custom_params else {},
        enabled=not args.disabled,
        order_num=args.order,
        owner_user_id=args.owner,
        is_public=args.public,
    )


async def _handle_add(args: argparse.Namespace, app_settings: Settings) -> int:
    from lextrans.main import app_lifespan

    config = _config_from_args(args)
    async with app_lifespan(app_settings, rebuild=False) as app:
        await app.model_registry.create_model(config)
    print(f"Created {config.stage.value} model {config.id} ({config.name})")
    return 0


async def _handle_test(args: argparse.Namespace, app_settings: Settings) -> int:
    from lextrans.main import app_lifespan

    async with app_lifespan(app_settings, rebuild=False) as app:
        model = await app.model_registry.get_model_by_id(args.model_id)
        if model is None:
            raise ModelNotFoundError(args.model_id)
        ok = await app.llm_provider.test_connection(model)
    print(f"{model.name}: {'OK' if ok else 'FAILED'}")
    return 0 if ok else 1


async def _handle_toggle(args: argparse.Namespace, app_settings: Settings) -> int:
    """Enable/disable globally, or only for ``--user`` when given."""
    from lextrans.main import app_lifespan

    enabled = args.command == "enable"
    async with app_lifespan(app_settings, rebuild=False) as app:
        if args.user:
            await app.model_registry.set_user_preference(args.user, args.model_id, enabled)
        elif await app.model_registry.update_model(args.model_id, enabled=enabled) is None:
            raise ModelNotFoundError(args.model_id)
    scope = f"for {args.user}" if args.user else "globally"
    print(f"Model {args.model_id} {'enabled' if enabled else 'disabled'} {scope}")
    return 0


async def _handle_reorder(args: argparse.Namespace, app_settings: Settings) -> int:
    from lextrans.main import app_lifespan

    async with app_lifespan(app_settings, rebuild=False) as app:
        await app.model_registry.reorder_models(args.model_ids)
    print(f"Reordered {len(args.model_ids)} models")
    return 0


async def _handle_delete(args: argparse.Namespace, app_settings: Settings) -> int:
    from lextrans.main import app_lifespan

    async with app_lifespan(app_settings, rebuild=False) as app:
        deleted = await app.model_registry.delete_model(args.model_id)
    if not deleted:
        print(f"Model not found: {args.model_id}", file=sys.stderr)
        return 1
    print(f"Deleted model {args.model_id}")
    return 0


_HANDLERS = {
    "list": _handle_list,
    "add": _handle_add,
    "test": _handle_test,
    "enable": _handle_toggle,
    "disable": _handle_toggle,
    "reorder": _handle_reorder,
    "delete": _handle_delete,
}


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m lextrans.cli.models",
        description="Manage LexTrans model configurations.",
    )
    subparsers = parser.add_subparsers(dest="command", help="Model commands")
    stages = [stage.value for stage in ModelStage]

    list_parser = subparsers.add_parser("list", help="List visible models")
    list_parser.add_argument("--stage", choices=stages, default=None)
    list_parser.add_argument("--user", default=None)
    list_parser.add_argument("--admin", action="store_true")

    add_parser = subparsers.add_parser("add", help="Add a model configuration")
    add_parser.add_argument("--name", required=True)
    add_parser.add_argument("--stage", required=True, choices=stages)
    add_parser.add_argument("--endpoint", required=True, help="Full chat or embedding URL")
    add_parser.add_argument("--model-id", required=True, dest="model_id")
    key_group = add_parser.add_mutually_exclusive_group()
    key_group.add_argument("--api-key", default="", dest="api_key")
    key_group.add_argument(
        "--api-key-env", default=None, dest="api_key_env",
        help="Read the API key from this environment variable",
    )
    add_parser.add_argument("--system-prompt", default=None, dest="system_prompt")
    add_parser.add_argument("--temperature", type=float, default=None)
    add_parser.add_argument("--max-tokens", type=int, default=None, dest="max_tokens")
    add_parser.add_argument("--top-p", type=float, default=None, dest="top_p")
    add_parser.add_argument(
        "--custom-params", default=None, dest="custom_params",
        help='Extra request fields as JSON, e.g. \'{"seed": 7}\'',
    )
    add_parser.add_argument("--order", type=int, default=0)
    add_parser.add_argument("--owner", default=None)
    add_parser.add_argument("--public", action="store_true")
    add_parser.add_argument("--disabled", action="store_true")

    test_parser = subparsers.add_parser("test", help="Send a probe request")
    test_parser.add_argument("model_id")

    for name in ("enable", "disable"):
        toggle_parser = subparsers.add_parser(name, help=f"{name.capitalize()} a model")
        toggle_parser.add_argument("model_id")
        toggle_parser.add_argument("--user", default=None, help="Only for this user")

    reorder_parser = subparsers.add_parser("reorder", help="Set model order")
    reorder_parser.add_argument("model_ids", nargs="+")

    delete_parser = subparsers.add_parser("delete", help="Delete a model")
    delete_parser.add_argument("model_id")

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
