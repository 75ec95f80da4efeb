"""Command line entry-point for the founder interview engine."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Callable, Dict, Optional

from .config import AppSettings
from .engine import InterviewEngine, build_engine
from .errors import InterviewEngineError
from .sessions_cli import run_sessions_cli

TERMINATION_TOKENS = {"done", "finish", "[end]"}

InputFn = Callable[[str], str]
OutputFn = Callable[[str], None]


async def run_console_interview(
    engine: InterviewEngine,
    owner_id: str,
    *,
    input_fn: InputFn = input,
    output_fn: OutputFn = print,
) -> Dict[str, Any]:
    """Drive one interview from a terminal and return the stored summary."""

    result = await engine.request_next_turn(owner_id)
    while not result.force_complete:
        output_fn(f"\nMavrik: {result.question}")
        if result.approaching_limit:
            output_fn("(This is the last question.)")
        answer = input_fn("You: ").strip()
        if not answer:
            continue
        if answer.lower() in TERMINATION_TOKENS:
            if result.can_finalize:
                break
            output_fn("Let's cover a few more questions before wrapping up.")
            continue
        result = await engine.request_next_turn(
            owner_id,
            session_id=result.session_id,
            answer_text=answer,
        )

    output_fn("\nThanks! Drafting your founder profile...")
    summary = await engine.request_summary(owner_id, result.session_id)
    output_fn(json.dumps(summary, indent=2, ensure_ascii=False))
    return summary


def _parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="founder-interview",
        description="Interview a founder and distill a structured profile",
    )
    parser.add_argument(
        "--owner",
        default="local-founder",
        help="Owner identity for the interview session (default: local-founder)",
    )
    parser.add_argument(
        "--serve",
        action="store_true",
        help="Run the HTTP API instead of the console interview.",
    )
    parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="Host interface for the API server (default: 127.0.0.1)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8081,
        help="TCP port for the API server (default: 8081)",
    )
    parser.add_argument(
        "--allow-origin",
        action="append",
        dest="allow_origin",
        help="CORS origin(s) to allow. Defaults to '*' if not provided.",
    )
    parser.add_argument(
        "--tracing",
        action="store_true",
        help="Enable OpenTelemetry tracing through the agent framework.",
    )
    return parser.parse_args(argv)


def run_cli(argv: Optional[list[str]] = None) -> None:
    """Entry-point invoked from ``python -m founder_interview``."""

    logging.basicConfig(level=logging.INFO)
    arg_list = list(argv) if argv is not None else sys.argv[1:]
    if arg_list and arg_list[0] == "sessions":
        settings = AppSettings.load()
        run_sessions_cli(settings, arg_list[1:])
        return

    args = _parse_args(arg_list)
    try:
        settings = AppSettings.load()
    except RuntimeError as exc:
        logging.error("Failed to load AppSettings: %s", exc)
        raise SystemExit(1) from exc

    if args.tracing:
        from .observability import initialize_tracing

        initialize_tracing()

    if args.serve:
        from .api import run_api_server

        run_api_server(
            settings,
            host=args.host,
            port=args.port,
            allow_origins=args.allow_origin,
        )
        return

    engine = build_engine(settings)
    try:
        asyncio.run(run_console_interview(engine, args.owner))
    except InterviewEngineError as exc:
        print(exc.user_message, file=sys.stderr)
        raise SystemExit(1) from exc


if __name__ == "__main__":  # pragma: no cover - manual execution hook
    run_cli()
