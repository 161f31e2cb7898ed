#!/usr/bin/env python3
"""
chatbench CLI — point it at an endpoint, talk, keep the history.

Every command has a short name and standard aliases:

    COMMAND         ALIASES         WHAT IT DOES
    -------         -------         ----------------------------------
    configure       config, setup   Save the endpoint, key and model
    models          ls-models       List models the endpoint advertises
    new             open            Start a new conversation
    list            history, ls     List stored conversations
    show            cat             Print a conversation
    chat            talk, say       Send a message (or open a REPL)
    delete          rm              Delete a conversation
    embed           embeddings      Extract an embedding vector from a file
    dump            export          Export conversations to JSON
    tap             log, tail       Show the wire log
"""

import argparse
import asyncio
import json
import logging
import sys
from datetime import datetime
from pathlib import Path

from chatbench import __version__
from chatbench.backends import GatewayError
from chatbench.config import load_config
from chatbench.files import FileInput
from chatbench.models import APIConfig
from chatbench.orchestrator import (
    ConfigurationRequired,
    ConversationListener,
    ConversationOrchestrator,
)
from chatbench.storage import StorageError

BANNER = f"""
    ┌──────────────────────────────────────────┐
    │  chatbench v{__version__:<8}                     │
    │  any endpoint, one conversation log      │
    └──────────────────────────────────────────┘
"""

ROLE_COLORS = {"user": "\033[96m", "assistant": "\033[93m", "system": "\033[90m"}
RESET = "\033[0m"


def _setup_logging(cfg: dict):
    log_cfg = cfg.get("logging", {})
    level = getattr(logging, str(log_cfg.get("level", "WARNING")).upper(), logging.WARNING)
    log_file = log_cfg.get("file")

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=handlers,
        force=True,
    )


class ConsoleListener(ConversationListener):
    """Prints what the orchestrator asks the user to act on."""

    def on_config_required(self):
        print("  ✗  No endpoint configured — run 'chatbench configure --host <host>' first")

    def on_embeddings(self, result):
        preview = ", ".join(f"{v:.6f}" for v in result.vector[:8])
        more = ", ..." if result.dimensions > 8 else ""
        print(f"  🧲 {result.file_name}")
        print(f"     Vector dimensions: {result.dimensions}")
        print(f"     [{preview}{more}]")


def _fmt_ts(ms: int) -> str:
    return datetime.fromtimestamp(ms / 1000).strftime("%Y-%m-%d %H:%M")


def _resolve(orch: ConversationOrchestrator, prefix: str) -> str:
    """Find a conversation by id or unique id prefix."""
    matches = [c.id for c in orch.conversations if c.id.startswith(prefix)]
    if len(matches) != 1:
        what = "No" if not matches else "Ambiguous"
        raise KeyError(f"{what} conversation matching '{prefix}'")
    return matches[0]


def _print_message(message):
    color = ROLE_COLORS.get(message.role, "")
    print(f"\n  {color}{message.role.upper()}{RESET}  {_fmt_ts(message.timestamp)}")
    for line in message.content.splitlines() or [""]:
        print(f"    {line}")
    for att in message.attachments:
        print(f"    📎 {att.name} ({att.type})")


async def _with_orchestrator(args, fn):
    cfg = load_config(args.config, reload=args.config is not None)
    _setup_logging(cfg)
    orch = ConversationOrchestrator.from_config(cfg)
    orch.add_listener(ConsoleListener())
    try:
        await orch.start()
        return await fn(orch, cfg)
    finally:
        await orch.store.close()
        if orch.wire_log is not None:
            orch.wire_log.close()


def _run(args, fn) -> int:
    try:
        result = asyncio.run(_with_orchestrator(args, fn))
    except (GatewayError, StorageError, ConfigurationRequired, KeyError, ValueError, OSError) as e:
        msg = e.args[0] if isinstance(e, KeyError) and e.args else e
        print(f"  ✗  {msg}")
        return 1
    return result or 0


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def cmd_configure(args):
    """Save the endpoint configuration, picking a model if none was given."""
    async def run(orch, cfg):
        current = orch.api_config
        hostname = args.host or (current.hostname if current else "")
        if not hostname:
            raise ValueError("Please provide --host")
        api_key = args.api_key if args.api_key is not None else (current.api_key if current else None)
        model = args.model

        if not model:
            models = await orch.gateway.list_models(APIConfig(hostname=hostname, api_key=api_key))
            if not models:
                raise ValueError("Endpoint advertised no models; pass --model explicitly")
            print(f"  ✓  Connection successful — {len(models)} models")
            model = models[0].id

        config = APIConfig(hostname=hostname, model=model, api_key=api_key or None)
        await orch.save_config(config)
        print(f"  ✓  Saved: {config.hostname} / {config.model}")
        if orch.selected_id:
            print(f"  📼 Conversation: {orch.selected_id}")

    return _run(args, run)


def cmd_models(args):
    """List models advertised by the endpoint."""
    async def run(orch, cfg):
        config = orch.api_config
        if args.host:
            config = APIConfig(hostname=args.host, api_key=args.api_key)
        if config is None:
            raise ConfigurationRequired("Pass --host or run 'chatbench configure' first")
        models = await orch.gateway.list_models(config)
        if not models:
            print("  No models advertised.")
            return
        for m in models:
            marker = "●" if orch.api_config and m.id == orch.api_config.model else " "
            label = m.id if m.name == m.id else f"{m.id}  ({m.name})"
            print(f"  {marker} {label}")

    return _run(args, run)


def cmd_new(args):
    """Start a new conversation pinned to the current config."""
    async def run(orch, cfg):
        conversation = await orch.new_conversation()
        if conversation is None:
            return 1
        print(f"  📼 {conversation.id}  ({conversation.api_config.model})")

    return _run(args, run)


def cmd_list(args):
    """List conversations, most recent first."""
    async def run(orch, cfg):
        if not orch.conversations:
            print("  No conversations yet.")
            return
        for c in orch.conversations[: args.limit]:
            print(
                f"  {c.id[:8]}  {_fmt_ts(c.updated_at)}  {len(c.messages):>3} msgs  "
                f"{c.api_config.model:<20}  {c.title}"
            )

    return _run(args, run)


def cmd_show(args):
    """Print every message of a conversation."""
    async def run(orch, cfg):
        orch.select_conversation(_resolve(orch, args.id))
        c = orch.current_conversation
        print(f"  📼 {c.title}")
        print(f"     {c.id} | {c.api_config.hostname} / {c.api_config.model}")
        if not c.messages:
            print("\n  (no messages)")
        for message in c.messages:
            _print_message(message)
        print()

    return _run(args, run)


def cmd_chat(args):
    """Send one message, or open a REPL when no message is given."""
    async def run(orch, cfg):
        if args.id:
            orch.select_conversation(_resolve(orch, args.id))
        elif orch.conversations:
            orch.select_conversation(orch.conversations[0].id)
        elif await orch.new_conversation() is None:
            return 1

        files = [FileInput.from_path(p) for p in args.attach or []]
        if args.message:
            return await _send(orch, " ".join(args.message), files)

        print(BANNER)
        print(f"  Talking in {orch.selected_id}. Type 'exit' or Ctrl-D to leave.\n")
        while True:
            try:
                text = (await asyncio.to_thread(input, "  you> ")).strip()
            except (EOFError, KeyboardInterrupt):
                print()
                break
            if not text:
                continue
            if text.lower() in ("exit", "quit", "q"):
                break
            await _send(orch, text, files)
            files = []

    return _run(args, run)


async def _send(orch: ConversationOrchestrator, text: str, files: list[FileInput]) -> int:
    conversation = await orch.send_message(text, files)
    if conversation is None:
        print("  ✗  Nothing sent — select a conversation and configure an endpoint")
        return 1
    reply = conversation.messages[-1]
    _print_message(reply)
    print()
    return 1 if reply.content.startswith("Error: ") else 0


def cmd_delete(args):
    """Delete a conversation."""
    async def run(orch, cfg):
        conversation_id = _resolve(orch, args.id)
        await orch.delete_conversation(conversation_id)
        print(f"  🗑  Deleted {conversation_id}")

    return _run(args, run)


def cmd_embed(args):
    """Extract an embedding vector from a file."""
    async def run(orch, cfg):
        if args.id:
            orch.select_conversation(_resolve(orch, args.id))
        result = await orch.extract_embeddings(FileInput.from_path(args.file))
        if args.output:
            with open(args.output, "w") as f:
                json.dump({"file": result.file_name, "embedding": list(result.vector)}, f)
            print(f"  📦 Wrote vector to {args.output}")

    return _run(args, run)


def cmd_dump(args):
    """Export conversations to JSON."""
    async def run(orch, cfg):
        data = [c.to_dict() for c in orch.conversations]
        indent = 2 if args.pretty else None
        with open(args.output, "w") as f:
            json.dump(data, f, indent=indent, ensure_ascii=False)
        print(f"  📼 Database: {cfg['storage']['sqlite_path']}")
        print(f"  📦 Dumped {len(data)} conversations to {args.output}")

    return _run(args, run)


def cmd_tap(args):
    """Show the last entries of the wire log."""
    from chatbench.wiretap import format_entry, read_entries

    cfg = load_config(args.config, reload=args.config is not None)
    log_path = args.log or cfg["wiretap"]["path"]
    entries = read_entries(log_path, last_n=args.last)
    if not entries:
        print(f"  No wire entries at {log_path}")
        if not cfg["wiretap"].get("enabled"):
            print("  (enable wiretap in config.yaml to record traffic)")
        return 0
    for entry in entries:
        if args.role and entry.get("role") != args.role:
            continue
        print(format_entry(entry, raw=args.raw))
    return 0


# ---------------------------------------------------------------------------
# Parser with aliases
# ---------------------------------------------------------------------------

def _add_command(subparsers, names, help_text, func, setup_fn=None):
    """Register a command under multiple names."""
    p = subparsers.add_parser(names[0], help=help_text, aliases=names[1:])
    p.set_defaults(func=func)
    if setup_fn:
        setup_fn(p)
    return p


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="chatbench",
        description="chatbench — chat with any OpenAI- or Ollama-style endpoint.",
        epilog="Run 'chatbench <command> --help' for command-specific options.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--version", "-V", action="version",
        version=f"chatbench {__version__}",
    )
    parser.add_argument("--config", "-c", default=None, help="Path to config.yaml")

    sub = parser.add_subparsers(dest="command", metavar="<command>")

    def setup_configure(p):
        p.add_argument("--host", default=None, help="Endpoint host, e.g. localhost:11434")
        p.add_argument("--api-key", "-k", default=None, help="Authorization header value, sent verbatim")
        p.add_argument("--model", "-m", default=None, help="Model id (default: first advertised)")

    _add_command(sub, ["configure", "config", "setup"],
                 "Save the endpoint, key and model", cmd_configure, setup_configure)

    def setup_models(p):
        p.add_argument("--host", default=None, help="Query this host instead of the saved one")
        p.add_argument("--api-key", "-k", default=None, help="Authorization header value")

    _add_command(sub, ["models", "ls-models"],
                 "List models the endpoint advertises", cmd_models, setup_models)

    _add_command(sub, ["new", "open"], "Start a new conversation", cmd_new)

    def setup_list(p):
        p.add_argument("--limit", "-n", type=int, default=50, help="Show at most N conversations")

    _add_command(sub, ["list", "history", "ls"],
                 "List stored conversations", cmd_list, setup_list)

    def setup_show(p):
        p.add_argument("id", help="Conversation id or unique prefix")

    _add_command(sub, ["show", "cat"], "Print a conversation", cmd_show, setup_show)

    def setup_chat(p):
        p.add_argument("message", nargs="*", help="Message to send (omit for interactive REPL)")
        p.add_argument("--id", default=None, help="Conversation id or prefix (default: most recent)")
        p.add_argument("--attach", "-a", action="append", default=None,
                       help="Attach a file (can specify multiple times)")

    _add_command(sub, ["chat", "talk", "say"],
                 "Send a message (or open a REPL)", cmd_chat, setup_chat)

    def setup_delete(p):
        p.add_argument("id", help="Conversation id or unique prefix")

    _add_command(sub, ["delete", "rm"], "Delete a conversation", cmd_delete, setup_delete)

    def setup_embed(p):
        p.add_argument("file", help="File whose text is embedded")
        p.add_argument("--id", default=None, help="Use this conversation's pinned config")
        p.add_argument("--output", "-o", default=None, help="Write the full vector as JSON")

    _add_command(sub, ["embed", "embeddings"],
                 "Extract an embedding vector from a file", cmd_embed, setup_embed)

    def setup_dump(p):
        p.add_argument("--output", "-o", default="conversations_export.json", help="Output file")
        p.add_argument("--pretty", action="store_true", help="Pretty-print JSON")

    _add_command(sub, ["dump", "export"], "Export conversations to JSON", cmd_dump, setup_dump)

    def setup_tap(p):
        p.add_argument("--log", default=None, help="Path to wire.jsonl (default: from config)")
        p.add_argument("--last", "-n", type=int, default=20, help="Show last N entries")
        p.add_argument("--role", "-r", choices=["user", "assistant"], default=None, help="Filter by role")
        p.add_argument("--raw", action="store_true", help="Raw JSONL output, no formatting")

    _add_command(sub, ["tap", "log", "tail"], "Show the wire log", cmd_tap, setup_tap)

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        print(BANNER)
        parser.print_help()
        return 0

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
