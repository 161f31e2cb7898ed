"""
Wiretap — a record of what went over the wire.

WireLog writes one JSONL entry per message sent to or received from an
endpoint. It is separate from the debug log: a clean record of who said
what, when, to which model. read_entries() and format_entry() back the
`chatbench tap` command.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path

logger = logging.getLogger(__name__)

# ANSI colors
C_RESET = "\033[0m"
C_DIM = "\033[2m"
C_USER = "\033[96m"      # cyan
C_ASSISTANT = "\033[93m"  # yellow
C_SYSTEM = "\033[90m"     # gray
C_ERROR = "\033[91m"      # red

ROLE_COLORS = {
    "user": C_USER,
    "assistant": C_ASSISTANT,
    "system": C_SYSTEM,
}

MAX_CONTENT = 2000


class WireLog:
    """
    Structured JSONL logger for the wire.

    Format:
        {"ts": "...", "dir": "outbound|inbound", "role": "...",
         "model": "...", "conv": "...", "len": 123, "content": "..."}
    """

    def __init__(self, log_path: str):
        self.log_path = Path(log_path)
        self._file = None

    def _ensure_open(self):
        if self._file is None:
            self.log_path.parent.mkdir(parents=True, exist_ok=True)
            self._file = open(self.log_path, "a", buffering=1)  # line-buffered

    def log(
        self,
        direction: str,  # "outbound" (to endpoint) or "inbound" (from endpoint)
        role: str,
        content: str,
        model: str = "",
        conversation_id: str = "",
        error: bool = False,
    ):
        """Write a wire log entry."""
        self._ensure_open()
        entry = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "dir": direction,
            "role": role,
            "model": model,
            "conv": conversation_id[:16] if conversation_id else "",
            "len": len(content),
        }
        if error:
            entry["error"] = True

        if len(content) <= MAX_CONTENT:
            entry["content"] = content
        else:
            half = MAX_CONTENT // 2
            entry["content"] = (
                content[:half]
                + f"\n\n[... {len(content) - MAX_CONTENT} chars truncated ...]\n\n"
                + content[-half:]
            )

        self._file.write(json.dumps(entry, ensure_ascii=False) + "\n")

    def close(self):
        if self._file:
            self._file.close()
            self._file = None


def read_entries(log_path: str, last_n: int = 20) -> list[dict]:
    """Last N well-formed entries of a wire log. Missing file -> []."""
    path = Path(log_path)
    if not path.exists():
        return []
    entries = []
    with open(path) as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                entries.append(json.loads(line))
            except json.JSONDecodeError:
                logger.debug("Skipping malformed wire entry: %.80s", line)
    return entries[-last_n:] if last_n > 0 else entries


def format_entry(entry: dict, raw: bool = False) -> str:
    """Format a single wire log entry for display."""
    if raw:
        return json.dumps(entry, ensure_ascii=False)

    ts = entry.get("ts", "")
    try:
        time_str = datetime.fromisoformat(ts).strftime("%H:%M:%S")
    except (ValueError, TypeError):
        time_str = ts[:8] if ts else "??:??:??"

    role = entry.get("role", "?")
    color = C_ERROR if entry.get("error") else ROLE_COLORS.get(role, C_RESET)
    arrow = "──▶" if entry.get("dir") == "outbound" else "◀──"
    header = (
        f"{C_DIM}{time_str}{C_RESET} {C_DIM}{arrow}{C_RESET} "
        f"{color}{role.upper()}{C_RESET} {C_DIM}{entry.get('model', '')} "
        f"[{entry.get('conv', '')}] {entry.get('len', 0)} chars{C_RESET}"
    )
    content = entry.get("content", "")
    body = "\n".join("    " + line for line in content.splitlines()) if content else ""
    return f"{header}\n{body}" if body else header
