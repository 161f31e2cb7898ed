"""
Data models for conversations.
These define the shape of data flowing between the gateway, the store
and the orchestrator. Every model is immutable: changes produce a new
value, so a published snapshot can never be modified out of band.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field, replace

ROLES = ("user", "assistant", "system")
DEFAULT_TITLE = "New Conversation"
TITLE_LENGTH = 50


def now_ms() -> int:
    """Current time in epoch milliseconds."""
    return int(time.time() * 1000)


def derive_title(content: str, limit: int = TITLE_LENGTH) -> str:
    """Title from the first user message, truncated with '...'."""
    if len(content) > limit:
        return content[:limit] + "..."
    return content


@dataclass(frozen=True)
class Attachment:
    """A file carried inside a message. data is base64 text."""
    name: str
    type: str
    data: str

    def to_dict(self) -> dict:
        return {"name": self.name, "type": self.type, "data": self.data}

    @classmethod
    def from_dict(cls, d: dict) -> Attachment:
        return cls(name=d["name"], type=d.get("type", ""), data=d.get("data", ""))


@dataclass(frozen=True)
class Message:
    """A single message in a conversation."""
    role: str                # "user", "assistant", "system"
    content: str
    timestamp: int = field(default_factory=now_ms)
    attachments: tuple[Attachment, ...] = ()

    def __post_init__(self):
        if self.role not in ROLES:
            raise ValueError(f"Unknown role: {self.role!r}")

    def to_openai_format(self) -> dict:
        """Role/content pair as sent upstream. Attachments and timestamps stay local."""
        return {"role": self.role, "content": self.content}

    def to_dict(self) -> dict:
        d = {"role": self.role, "content": self.content, "timestamp": self.timestamp}
        if self.attachments:
            d["attachments"] = [a.to_dict() for a in self.attachments]
        return d

    @classmethod
    def from_dict(cls, d: dict) -> Message:
        return cls(
            role=d["role"],
            content=d.get("content", ""),
            timestamp=d.get("timestamp", 0),
            attachments=tuple(Attachment.from_dict(a) for a in d.get("attachments") or ()),
        )


@dataclass(frozen=True)
class APIConfig:
    """
    Endpoint configuration. hostname is kept exactly as entered;
    normalization happens on every request.
    """
    hostname: str
    model: str = ""
    api_key: str | None = None

    def __post_init__(self):
        # An empty key means no key
        if self.api_key == "":
            object.__setattr__(self, "api_key", None)

    @property
    def is_valid(self) -> bool:
        return bool(self.hostname.strip()) and bool(self.model)

    def to_dict(self) -> dict:
        d = {"hostname": self.hostname, "model": self.model}
        if self.api_key:
            d["api_key"] = self.api_key
        return d

    @classmethod
    def from_dict(cls, d: dict) -> APIConfig:
        return cls(
            hostname=d.get("hostname", ""),
            model=d.get("model", ""),
            api_key=d.get("api_key") or None,
        )


@dataclass(frozen=True)
class ModelInfo:
    """A model advertised by an endpoint."""
    id: str
    name: str


@dataclass(frozen=True)
class Conversation:
    """
    A titled, ordered log of messages pinned to the APIConfig that was
    current when it was created.
    """
    id: str
    title: str
    messages: tuple[Message, ...]
    created_at: int
    updated_at: int
    api_config: APIConfig

    @classmethod
    def new(cls, api_config: APIConfig, conversation_id: str, now: int | None = None) -> Conversation:
        ts = now if now is not None else now_ms()
        return cls(
            id=conversation_id,
            title=DEFAULT_TITLE,
            messages=(),
            created_at=ts,
            updated_at=ts,
            # Copy by value; later settings edits never reach this conversation
            api_config=replace(api_config),
        )

    def with_message(
        self, message: Message, now: int | None = None, title_length: int = TITLE_LENGTH
    ) -> Conversation:
        """Append a message. The first message names the conversation."""
        title = self.title
        if not self.messages:
            title = derive_title(message.content, title_length)
        return replace(
            self,
            title=title,
            messages=self.messages + (message,),
            updated_at=now if now is not None else now_ms(),
        )

    def to_openai_format(self) -> list[dict]:
        return [m.to_openai_format() for m in self.messages]

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "messages": [m.to_dict() for m in self.messages],
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "api_config": self.api_config.to_dict(),
        }

    @classmethod
    def from_dict(cls, d: dict) -> Conversation:
        return cls(
            id=d["id"],
            title=d.get("title", DEFAULT_TITLE),
            messages=tuple(Message.from_dict(m) for m in d.get("messages") or ()),
            created_at=d["created_at"],
            updated_at=d["updated_at"],
            api_config=APIConfig.from_dict(d.get("api_config") or {}),
        )
