"""Command-line utilities for inspecting stored interview sessions."""

from __future__ import annotations

import argparse
import json
from typing import Callable, List, Optional

from .config import AppSettings
from .models import InterviewSession
from .session_store import InMemorySessionStore, RedisSessionStore, SessionStore

CommandHandler = Callable[[SessionStore, argparse.Namespace], None]


def _store_for(settings: AppSettings) -> SessionStore:
    if settings.redis_url:
        return RedisSessionStore.from_url(settings.redis_url)
    # Nothing outlives the process without Redis, so there is nothing to list.
    return InMemorySessionStore()


def run_sessions_cli(
    settings: AppSettings,
    argv: Optional[List[str]] = None,
    *,
    store: Optional[SessionStore] = None,
) -> None:
    """Entry point for session inspection commands."""

    parser = argparse.ArgumentParser(
        prog="founder-interview sessions",
        description="List and display stored interview sessions.",
    )
    subparsers = parser.add_subparsers(dest="command")
    subparsers.required = True

    list_parser = subparsers.add_parser("list", help="Show an owner's sessions")
    list_parser.add_argument("--owner", required=True, help="Owner identity")
    list_parser.add_argument(
        "-n",
        "--limit",
        type=int,
        default=10,
        help="Maximum number of sessions to display (default: 10)",
    )
    list_parser.set_defaults(func=_handle_list)

    show_parser = subparsers.add_parser(
        "show",
        help="Display the full conversation for a session",
    )
    show_parser.add_argument("id", help="Session identifier")
    show_parser.add_argument("--owner", required=True, help="Owner identity")
    show_parser.set_defaults(func=_handle_show)

    args = parser.parse_args(argv)
    handler: CommandHandler = args.func
    handler(store or _store_for(settings), args)


def _describe(session: InterviewSession) -> str:
    return (
        f" - {session.id} | {session.mode.value} | {session.status.value} | "
        f"{session.created_at.isoformat()} | "
        f"{session.interviewer_turns} questions"
    )


def _handle_list(store: SessionStore, args: argparse.Namespace) -> None:
    sessions = store.list_for_owner(args.owner)[: args.limit]
    if not sessions:
        print("No sessions found.")
        return
    print(f"Showing {len(sessions)} session(s):")
    for session in sessions:
        print(_describe(session))


def _handle_show(store: SessionStore, args: argparse.Namespace) -> None:
    session = store.get(args.id)
    if session is None or session.owner_id != args.owner:
        print(f"Session '{args.id}' not found.")
        return
    print(f"Session ID: {session.id}")
    print(f"Mode: {session.mode.value}")
    print(f"Status: {session.status.value}")
    print(f"Started: {session.created_at.isoformat()}")
    if session.fallback_topic:
        print(f"Fallback asked for: {session.fallback_topic}")
    for turn in session.transcript:
        print("\n" + "-" * 40)
        print(f"[{turn.role.value}] {turn.content}")
    if session.summary is not None:
        print("\nSummary:\n")
        print(json.dumps(session.summary, indent=2, ensure_ascii=False))
