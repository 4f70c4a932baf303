#!/usr/bin/env python3
"""vibe command line: chat, multi-file edits, model and config management."""

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from vibe.agents.multi_edit import MultiFileEditor
from vibe.core.config import ConfigStore, coerce_value
from vibe.core.errors import VibeError
from vibe.core.logging import redact_sensitive, setup_logging
from vibe.core.types import ChatMessage, CompletionRequest, ContentPart, TaskType
from vibe.models.change import EditOptions
from vibe.services.model_router import detect_task_type, route_model
from vibe.services.openrouter import OpenRouterClient, encode_image_to_data_url
from vibe.services.session_context import SessionContext
from vibe.ui.prompts import ConsolePrompter

THEMES = ("dark", "light")

TASK_INSTRUCTIONS = {
    "generate": "You are an expert programmer. Write the requested code. Reply with code first, then brief notes.",
    "complete": "Continue the given code naturally. Reply with the completion only.",
    "refactor": "Refactor the given code for clarity and maintainability without changing behaviour.",
    "test": "Write thorough unit tests for the given code using the project's test framework.",
    "debug": "Find the root cause of the described problem and propose a concrete fix.",
    "review": "Review the given code. List bugs, risks and improvements, most important first.",
}


class CliContext:
    """State shared by command handlers for one invocation."""

    def __init__(self, store: ConfigStore, prompter: ConsolePrompter, interactive: bool):
        self.store = store
        self.prompter = prompter
        self.session = SessionContext(store, prompter, interactive=interactive)

    def client(self) -> OpenRouterClient:
        return OpenRouterClient(self.store.settings(), self.session)


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, default=str))


def cmd_chat(args: argparse.Namespace, ctx: CliContext) -> int:
    text = " ".join(args.text)
    request = CompletionRequest(
        messages=[ChatMessage(role="user", content=text)],
        prompt=text,
        model=args.model,
        thinking=args.thinking,
    )
    with ctx.client() as client:
        result = client.chat_completion(request)
    print(result.content)
    return 0


def cmd_task(args: argparse.Namespace, ctx: CliContext) -> int:
    """generate / complete / refactor / test / debug / review: one routed completion."""
    text = " ".join(args.text)
    if args.file:
        content = Path(args.file).read_text(encoding="utf-8")
        text = f"{text}\n\nFile: {args.file}\n```\n{content.rstrip()}\n```"

    with ctx.client() as client:
        task_type = client.router.task_for(text, args.command)
        request = CompletionRequest(
            messages=[
                ChatMessage(role="system", content=TASK_INSTRUCTIONS[args.command]),
                ChatMessage(role="user", content=text),
            ],
            task_type=task_type,
            prompt=text,
            model=args.model,
        )
        result = client.chat_completion(request)
    print(result.content)
    return 0


def cmd_edit(args: argparse.Namespace, ctx: CliContext) -> int:
    options = EditOptions(
        interactive=not args.no_interactive,
        dry_run=args.dry_run,
        backup=not args.no_backup,
        max_files=args.max_files,
        model=args.model,
    )
    with ctx.client() as client:
        outcome = MultiFileEditor(client, ctx.prompter).edit_files(" ".join(args.prompt), args.glob, options)

    print(outcome.message)
    for r in outcome.results:
        if r.success:
            note = f" ({r.hunks_applied} change(s)"
            note += f", {r.hunks_skipped} already applied)" if r.hunks_skipped else ")"
            print(f"  ok   {r.path}{note}")
        else:
            print(f"  fail {r.path}: {r.error}")
    return 0 if outcome.success else 1


def cmd_model(args: argparse.Namespace, ctx: CliContext) -> int:
    settings = ctx.store.settings()

    if args.action == "list":
        with ctx.client() as client:
            default, models = client.list_free_models()
        _print_json({
            "default": default,
            "free_models": [m.model_dump(exclude_none=True) for m in models],
        })
    elif args.action == "use":
        if not args.value:
            raise VibeError("Usage: vibe model use <model-id>")
        ctx.store.set_path("openrouter.defaultModel", args.value)
        print(f"Default model set to {args.value}")
    elif args.action == "route":
        text = " ".join(args.value or [])
        values = {t.value for t in TaskType}
        task_type = TaskType(text) if text in values else detect_task_type(text)
        _print_json({
            "task_type": task_type.value,
            "candidates": route_model(task_type, default_model=settings.openrouter.default_model),
        })
    elif args.action == "remote":
        with ctx.client() as client:
            models = client.fetch_remote_free_models()
        _print_json([m.model_dump(exclude_none=True) for m in models])
    return 0


def cmd_config(args: argparse.Namespace, ctx: CliContext) -> int:
    if args.action == "get":
        value = ctx.store.get_path(args.path) if args.path else ctx.store.data
        if args.path and "apikey" in args.path.lower():
            value = "***REDACTED***" if value else None
        _print_json(redact_sensitive(value))
        return 0

    if not args.path or args.value is None:
        raise VibeError("Usage: vibe config set <path> <value>")
    ctx.store.set_path(args.path, coerce_value(args.value), persist=False)
    ctx.store.settings()  # validate before writing
    ctx.store.save()
    print(f"Set {args.path}")
    return 0


def cmd_theme(args: argparse.Namespace, ctx: CliContext) -> int:
    ctx.store.set_path("core.theme", args.theme)
    print(f"Theme set to {args.theme}")
    return 0


def cmd_view(args: argparse.Namespace, ctx: CliContext) -> int:
    image = Path(args.image)
    if not image.is_file():
        raise VibeError(f"Image not found: {args.image}")
    text = " ".join(args.prompt) if args.prompt else "Describe this image."
    request = CompletionRequest(
        messages=[ChatMessage(role="user", content=[
            ContentPart.of_text(text),
            ContentPart.of_image(encode_image_to_data_url(str(image))),
        ])],
        task_type=TaskType.LONG_CONTEXT,
        model=args.model,
    )
    with ctx.client() as client:
        result = client.chat_completion(request)
    print(result.content)
    return 0


def cmd_key(args: argparse.Namespace, ctx: CliContext) -> int:
    if args.action == "status":
        _print_json(ctx.session.status())
        return 0

    ctx.session.clear()
    if ctx.store.get_path("openrouter.apiKey") is not None:
        del ctx.store.data["openrouter"]["apiKey"]
        ctx.store.save()
    print("API key cleared from config")
    return 0


COMMANDS: Dict[str, Callable[[argparse.Namespace, CliContext], int]] = {
    "chat": cmd_chat,
    "edit": cmd_edit,
    "model": cmd_model,
    "config": cmd_config,
    "theme": cmd_theme,
    "view": cmd_view,
    "key": cmd_key,
}
COMMANDS.update({name: cmd_task for name in TASK_INSTRUCTIONS})


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    common_parser = argparse.ArgumentParser(add_help=False)
    # SUPPRESS keeps a subcommand from resetting flags given before it
    common_parser.add_argument("--verbose", "-v", action="store_true", default=argparse.SUPPRESS,
                               help="Log at INFO level")
    common_parser.add_argument("--log-json", action="store_true", default=argparse.SUPPRESS,
                               help="Emit logs as JSON lines")

    parser = argparse.ArgumentParser(
        prog="vibe",
        description="Vibe CLI - OpenRouter chat and multi-file editing",
        parents=[common_parser],
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    chat_parser = subparsers.add_parser("chat", help="Send one message", parents=[common_parser])
    chat_parser.add_argument("text", nargs="+", help="Message text")
    chat_parser.add_argument("--model", type=str, help="Preferred model id")
    chat_parser.add_argument("--thinking", action="store_true", default=None,
                             help="Ask for more reasoning effort")

    for name in TASK_INSTRUCTIONS:
        task_parser = subparsers.add_parser(name, help=f"Routed {name} request", parents=[common_parser])
        task_parser.add_argument("text", nargs="+", help="Request text")
        task_parser.add_argument("--file", type=str, help="Include this file's content")
        task_parser.add_argument("--model", type=str, help="Preferred model id")

    edit_parser = subparsers.add_parser("edit", help="Edit files matching a glob", parents=[common_parser])
    edit_parser.add_argument("glob", help="Glob pattern, e.g. 'src/**/*.js'")
    edit_parser.add_argument("prompt", nargs="+", help="Requested change")
    edit_parser.add_argument("--dry-run", action="store_true", help="Preview without writing")
    edit_parser.add_argument("--no-backup", action="store_true", help="Do not write backup files")
    edit_parser.add_argument("--no-interactive", action="store_true", help="Apply without confirmation")
    edit_parser.add_argument("--max-files", type=int, default=20, help="Maximum files to scan (default: 20)")
    edit_parser.add_argument("--model", type=str, help="Preferred model id")

    model_parser = subparsers.add_parser("model", help="List, choose or route models", parents=[common_parser])
    model_parser.add_argument("action", choices=["list", "use", "route", "remote"])
    model_parser.add_argument("value", nargs="*", help="Model id (use) or task/prompt (route)")

    config_parser = subparsers.add_parser("config", help="Read or change config values", parents=[common_parser])
    config_parser.add_argument("action", choices=["get", "set"])
    config_parser.add_argument("path", nargs="?", help="Dotted path, e.g. core.rateLimitBackoff")
    config_parser.add_argument("value", nargs="?", help="New value (JSON literals are parsed)")

    theme_parser = subparsers.add_parser("theme", help="Set the UI theme", parents=[common_parser])
    theme_parser.add_argument("action", choices=["set"])
    theme_parser.add_argument("theme", choices=THEMES)

    view_parser = subparsers.add_parser("view", help="Ask about an image", parents=[common_parser])
    view_parser.add_argument("image", help="PNG or JPEG file")
    view_parser.add_argument("prompt", nargs="*", help="Question about the image")
    view_parser.add_argument("--model", type=str, help="Preferred model id")

    key_parser = subparsers.add_parser("key", help="API key status", parents=[common_parser])
    key_parser.add_argument("action", choices=["status", "clear"])

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None or args.command not in COMMANDS:
        parser.print_help()
        return 1

    setup_logging(
        "INFO" if getattr(args, "verbose", False) else None,
        structured=getattr(args, "log_json", False),
    )

    if args.command == "model" and args.action == "use":
        args.value = args.value[0] if args.value else None

    store = ConfigStore()
    store.ensure_defaults()
    ctx = CliContext(store, ConsolePrompter(), interactive=sys.stdin.isatty())

    try:
        return COMMANDS[args.command](args, ctx)
    except (VibeError, OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
