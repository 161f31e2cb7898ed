"""
File inputs — attachments for chat messages and sources for embeddings.
"""

from __future__ import annotations

import asyncio
import base64
import mimetypes
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class FileInput:
    """A file picked by the user, either on disk (path) or in memory (data)."""
    name: str
    type: str
    path: Path | None = None
    data: bytes | None = None

    @classmethod
    def from_path(cls, path: str | Path, mime_type: str | None = None) -> FileInput:
        p = Path(path)
        guessed, _ = mimetypes.guess_type(p.name)
        return cls(name=p.name, type=mime_type or guessed or "application/octet-stream", path=p)

    @property
    def is_text(self) -> bool:
        return self.type.startswith("text/")

    async def read_bytes(self) -> bytes:
        if self.data is not None:
            return self.data
        if self.path is None:
            raise FileNotFoundError(f"No content for {self.name}")
        return await asyncio.to_thread(self.path.read_bytes)

    async def read_base64(self) -> str:
        return base64.b64encode(await self.read_bytes()).decode("ascii")

    async def read_text(self) -> str:
        return (await self.read_bytes()).decode("utf-8", errors="replace")
