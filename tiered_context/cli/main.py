"""CLI: tiered-context sessions, status, context, summarize, reset, config validate."""

from __future__ import annotations

import argparse
import json
import logging
import sys

from ..config import load_config, validate_config
from ..engine import TieredContextEngine
from ..types import ConfigError, SessionNotFound, Tier


def _get_engine(args) -> TieredContextEngine:
    config = load_config(args.config)
    if args.db:
        config.storage.sqlite_path = args.db
    return TieredContextEngine(config=config, auto_summarize=False)


def cmd_sessions(args):
    """List stored sessions."""
    with _get_engine(args) as engine:
        sessions = engine.list_sessions(user_id=args.user)

    if not sessions:
        print("No sessions yet.")
        return

    print(f"{'Session':<38} {'User':<16} {'Messages':>8} {'Tokens':>10} {'Updated':>20}")
    print("-" * 96)
    for s in sessions:
        updated = s.updated_at.strftime("%Y-%m-%d %H:%M:%S")
        print(
            f"{s.id:<38} {(s.user_id or '-'):<16} {s.message_count:>8} "
            f"{s.total_tokens:>10,} {updated:>20}"
        )


def cmd_status(args):
    """Show counters, tiers, pins and summaries for one session."""
    with _get_engine(args) as engine:
        session = engine.get_session(args.session_id)
        messages = engine.list_messages(args.session_id)
        records = engine.get_summary_records(args.session_id)

    tiers = {t: 0 for t in Tier}
    for m in messages:
        tiers[m.tier] += 1

    print(f"Session:        {session.id}")
    print(f"User:           {session.user_id or '-'}")
    print(f"Messages:       {session.message_count}")
    print(f"Total Tokens:   {session.total_tokens:,}")
    print(f"Tiers:          recent={tiers[Tier.RECENT]} mid={tiers[Tier.MID]} historical={tiers[Tier.HISTORICAL]}")
    print(f"Pinned:         {len(session.pinned_message_ids)}")
    last = session.last_summary_at.strftime("%Y-%m-%d %H:%M:%S") if session.last_summary_at else "never"
    print(f"Last Summary:   {last}")
    print()

    if not records:
        print("No summaries yet.")
        return
    for r in records:
        print(f"[{r.tier.value}] messages {r.range_start}-{r.range_end}, {r.tokens} tokens")
        print(r.summary)
        print()


def cmd_context(args):
    """Print the assembled context for a session."""
    override = None
    if args.override:
        try:
            override = json.loads(args.override)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid --override JSON: {e}") from e
        if not isinstance(override, dict):
            raise ConfigError("Invalid --override JSON: expected an object")
    with _get_engine(args) as engine:
        context = engine.get_context(args.session_id, config_override=override)

    if args.json:
        print(json.dumps({
            "session_id": context.session_id,
            "messages": context.messages,
            "token_count": context.token_count,
            "pinned_ids": context.pinned_ids,
            "semantic_ids": context.semantic_ids,
        }, indent=2))
        return

    for entry in context.entries:
        print(f"--- {entry.category.value} / {entry.role.value} ({entry.tokens} tokens)")
        print(entry.content)
    print()
    breakdown = ", ".join(f"{k}={v}" for k, v in context.budget_breakdown.items())
    print(f"Total: {context.token_count} tokens ({breakdown}); trimmed {context.trimmed}")


def cmd_summarize(args):
    """Recompute summaries synchronously."""
    with _get_engine(args) as engine:
        run = engine.recompute_summaries(args.session_id)

    if run.stale:
        print("Session changed during summarization; result discarded.")
        return
    if not run.applied:
        print("Nothing to summarize.")
        return
    print(f"Mid window:  {run.mid_start}-{run.recent_start - 1}")
    print(f"Historical:  0-{run.mid_start - 1}")
    if run.fallbacks:
        print(f"Fallbacks:   {', '.join(run.fallbacks)}")


def cmd_reset(args):
    """Reset a session, keeping its id."""
    with _get_engine(args) as engine:
        session = engine.reset(args.session_id)
    print(f"Reset session {session.id}")


def cmd_config_validate(args):
    """Validate config file."""
    config = load_config(args.config)
    errors = validate_config(config)
    if errors:
        print("Config errors:")
        for e in errors:
            print(f"  - {e}")
        sys.exit(1)
    print("Config is valid.")


def main():
    parser = argparse.ArgumentParser(
        prog="tiered-context",
        description="Inspect and maintain tiered conversation memory",
    )
    parser.add_argument("--config", "-c", help="Path to config file")
    parser.add_argument("--db", help="Override storage.sqlite_path")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command")

    sessions_parser = subparsers.add_parser("sessions", help="List sessions")
    sessions_parser.add_argument("--user", help="Only sessions of this user id")

    status_parser = subparsers.add_parser("status", help="Show one session's state")
    status_parser.add_argument("session_id")

    context_parser = subparsers.add_parser("context", help="Print the assembled context")
    context_parser.add_argument("session_id")
    context_parser.add_argument("--json", action="store_true", help="Output JSON")
    context_parser.add_argument("--override", help="JSON object of config overrides")

    summarize_parser = subparsers.add_parser("summarize", help="Recompute summaries now")
    summarize_parser.add_argument("session_id")

    reset_parser = subparsers.add_parser("reset", help="Delete a session's messages and summaries")
    reset_parser.add_argument("session_id")

    # config validate
    config_parser = subparsers.add_parser("config", help="Config operations")
    config_sub = config_parser.add_subparsers(dest="config_command")
    config_sub.add_parser("validate", help="Validate config file")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        if args.command == "sessions":
            cmd_sessions(args)
        elif args.command == "status":
            cmd_status(args)
        elif args.command == "context":
            cmd_context(args)
        elif args.command == "summarize":
            cmd_summarize(args)
        elif args.command == "reset":
            cmd_reset(args)
        elif args.command == "config":
            if args.config_command == "validate":
                cmd_config_validate(args)
            else:
                print("Usage: tiered-context config validate")
                sys.exit(1)
    except SessionNotFound as e:
        print(str(e), file=sys.stderr)
        sys.exit(2)
    except ConfigError as e:
        print(str(e), file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
