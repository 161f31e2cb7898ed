"""
Conversation orchestrator — owns the conversation list and sequences
every workflow that touches it.

Send-message flow:
  append user message -> persist -> publish     (durable before any network)
  -> call the endpoint
  -> append reply or "Error: ..." message -> persist -> publish

The orchestrator is the only writer to the store. The in-memory list is
republished as an immutable tuple after every mutation. Sends on the same
conversation are serialized with a per-conversation lock so replies land
in the order messages were sent.

Gateway failures during a send become a visible assistant message.
Storage failures are never caught here; they reach the caller.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable
from uuid import uuid4

from chatbench.backends import GatewayError, InferenceGateway
from chatbench.files import FileInput
from chatbench.models import (
    TITLE_LENGTH,
    APIConfig,
    Attachment,
    Conversation,
    Message,
    now_ms,
)
from chatbench.settings import SettingsSlot
from chatbench.storage import ConversationStore
from chatbench.wiretap import WireLog

logger = logging.getLogger(__name__)

HISTORY_WINDOW = 10


class ConfigurationRequired(Exception):
    """No valid APIConfig has been saved yet."""


@dataclass(frozen=True)
class EmbeddingResult:
    """An embedding vector and the file it was extracted from."""
    file_name: str
    vector: tuple[float, ...]

    @property
    def dimensions(self) -> int:
        return len(self.vector)


class ConversationListener:
    """
    Receives state published by the orchestrator.
    Override the methods you care about; the defaults do nothing.
    """

    def on_conversations(self, conversations: tuple[Conversation, ...]) -> None:
        pass

    def on_selection(self, conversation_id: str | None) -> None:
        pass

    def on_config_required(self) -> None:
        pass

    def on_embeddings(self, result: EmbeddingResult) -> None:
        pass


class ConversationOrchestrator:
    """Conversation lifecycle and message exchange."""

    def __init__(
        self,
        store: ConversationStore,
        gateway: InferenceGateway,
        settings: SettingsSlot,
        history_window: int = HISTORY_WINDOW,
        title_length: int = TITLE_LENGTH,
        wire_log: WireLog | None = None,
        clock: Callable[[], int] = now_ms,
        id_factory: Callable[[], str] = lambda: str(uuid4()),
    ):
        if history_window < 1:
            raise ValueError(f"history_window must be at least 1, got {history_window}")
        self.store = store
        self.gateway = gateway
        self.settings = settings
        self.history_window = history_window
        self.title_length = title_length
        self.wire_log = wire_log
        self._clock = clock
        self._new_id = id_factory
        self._conversations: tuple[Conversation, ...] = ()
        self._selected_id: str | None = None
        self._listeners: list[ConversationListener] = []
        self._locks: dict[str, asyncio.Lock] = {}

    @classmethod
    def from_config(cls, cfg: dict) -> ConversationOrchestrator:
        """Build an orchestrator wired to the stores and gateway named in config."""
        storage_cfg = cfg["storage"]
        conv_cfg = cfg.get("conversation", {})
        tap_cfg = cfg.get("wiretap", {})
        return cls(
            store=ConversationStore(storage_cfg["sqlite_path"]),
            gateway=InferenceGateway(timeout=cfg.get("gateway", {}).get("timeout", 120)),
            settings=SettingsSlot(storage_cfg["settings_path"]),
            history_window=conv_cfg.get("history_window", HISTORY_WINDOW),
            title_length=conv_cfg.get("title_length", TITLE_LENGTH),
            wire_log=WireLog(tap_cfg["path"]) if tap_cfg.get("enabled") else None,
        )

    # ── State ──────────────────────────────────────────────────────────────

    @property
    def conversations(self) -> tuple[Conversation, ...]:
        return self._conversations

    @property
    def selected_id(self) -> str | None:
        return self._selected_id

    @property
    def current_conversation(self) -> Conversation | None:
        return self._find(self._selected_id)

    @property
    def api_config(self) -> APIConfig | None:
        return self.settings.current

    def add_listener(self, listener: ConversationListener):
        self._listeners.append(listener)

    def _find(self, conversation_id: str | None) -> Conversation | None:
        if conversation_id is None:
            return None
        for c in self._conversations:
            if c.id == conversation_id:
                return c
        return None

    def _has_valid_config(self) -> bool:
        return self.api_config is not None and self.api_config.is_valid

    def _notify(self, method: str, *args):
        for listener in self._listeners:
            try:
                getattr(listener, method)(*args)
            except Exception as e:
                logger.error("Listener %r %s failed: %s", listener, method, e)

    def _publish(self, conversations: tuple[Conversation, ...]):
        self._conversations = conversations
        self._notify("on_conversations", conversations)

    def _select(self, conversation_id: str | None):
        if conversation_id != self._selected_id:
            self._selected_id = conversation_id
            self._notify("on_selection", conversation_id)

    async def _commit(self, conversation: Conversation):
        """Persist, then republish with the conversation moved to the front."""
        await self.store.upsert(conversation)
        rest = tuple(c for c in self._conversations if c.id != conversation.id)
        self._publish((conversation,) + rest)

    def _lock_for(self, conversation_id: str) -> asyncio.Lock:
        lock = self._locks.get(conversation_id)
        if lock is None:
            lock = self._locks[conversation_id] = asyncio.Lock()
        return lock

    # ── Lifecycle ──────────────────────────────────────────────────────────

    async def start(self):
        """Read the saved config and load every stored conversation."""
        self.settings.load()
        conversations = await self.store.list_all()
        self._publish(tuple(conversations))
        logger.info(
            "Loaded %d conversations (config %s)",
            len(conversations),
            "present" if self._has_valid_config() else "missing",
        )

    async def save_config(self, config: APIConfig):
        """Make config current. Opens a conversation if none is selected."""
        if not config.is_valid:
            raise ValueError("Please provide hostname and select a model")
        self.settings.save(config)
        if self._selected_id is None:
            await self.new_conversation()

    async def new_conversation(self) -> Conversation | None:
        """
        Start a conversation pinned to the current config.
        Without a config, listeners are asked for one and nothing is created.
        """
        if not self._has_valid_config():
            logger.info("New conversation requested without a saved config")
            self._notify("on_config_required")
            return None

        conversation = Conversation.new(self.api_config, self._new_id(), self._clock())
        await self.store.upsert(conversation)
        self._publish((conversation,) + self._conversations)
        self._select(conversation.id)
        logger.debug("Created conversation %s", conversation.id)
        return conversation

    def select_conversation(self, conversation_id: str | None):
        if conversation_id is not None and self._find(conversation_id) is None:
            raise KeyError(conversation_id)
        self._select(conversation_id)

    async def delete_conversation(self, conversation_id: str):
        """
        Remove from the store first, then from the published list.
        Waits for an in-flight send on the same conversation to settle.
        """
        async with self._lock_for(conversation_id):
            await self.store.delete(conversation_id)
            self._publish(tuple(c for c in self._conversations if c.id != conversation_id))
            self._locks.pop(conversation_id, None)
        if self._selected_id == conversation_id:
            self._select(None)

    # ── Send message ───────────────────────────────────────────────────────

    async def send_message(
        self,
        text: str,
        attachments: list[FileInput] | None = None,
        conversation_id: str | None = None,
    ) -> Conversation | None:
        """
        Append a user message, ask the endpoint, append its reply.

        Returns the settled conversation, or None when there is no target
        conversation or no saved config. Endpoint failures are recorded as
        an "Error: ..." assistant message instead of being raised.
        """
        target_id = conversation_id or self._selected_id
        if self._find(target_id) is None or not self._has_valid_config():
            return None

        async with self._lock_for(target_id):
            conversation = self._find(target_id)
            if conversation is None:
                # Deleted while waiting for the previous send
                return None
            return await self._exchange(conversation, text, attachments or [])

    async def _exchange(
        self, conversation: Conversation, text: str, files: list[FileInput]
    ) -> Conversation:
        stored = await asyncio.gather(*(self._encode(f) for f in files))
        user_message = Message(
            role="user",
            content=text,
            timestamp=self._clock(),
            attachments=tuple(stored),
        )
        conversation = conversation.with_message(user_message, self._clock(), self.title_length)
        await self._commit(conversation)

        config = conversation.api_config
        try:
            outgoing = text + await self._inline_text_files(files)
            history = conversation.to_openai_format()
            history[-1] = {"role": "user", "content": outgoing}
            history = history[-self.history_window:]
            self._tap("outbound", "user", outgoing, config.model, conversation.id)
            reply = await self.gateway.send_chat(config, config.model, history)
            self._tap("inbound", "assistant", reply, config.model, conversation.id)
        except (GatewayError, OSError) as e:
            logger.warning("Send failed for conversation %s: %s", conversation.id, e)
            reply = f"Error: {str(e) or 'Failed to get response'}"
            self._tap("inbound", "assistant", reply, config.model, conversation.id, error=True)

        assistant_message = Message(role="assistant", content=reply, timestamp=self._clock())
        conversation = conversation.with_message(assistant_message, self._clock(), self.title_length)
        await self._commit(conversation)
        return conversation

    @staticmethod
    async def _encode(file: FileInput) -> Attachment:
        return Attachment(name=file.name, type=file.type, data=await file.read_base64())

    @staticmethod
    async def _inline_text_files(files: list[FileInput]) -> str:
        """Text attachments as labeled blocks; binary files are not inlined."""
        text_files = [f for f in files if f.is_text]
        contents = await asyncio.gather(*(f.read_text() for f in text_files))
        return "".join(f"\n\nFile: {f.name}\n{body}" for f, body in zip(text_files, contents))

    def _tap(self, direction, role, content, model, conversation_id, error=False):
        if self.wire_log is not None:
            self.wire_log.log(direction, role, content, model, conversation_id, error=error)

    # ── Embeddings ─────────────────────────────────────────────────────────

    async def extract_embeddings(self, file: FileInput) -> EmbeddingResult:
        """
        Embed the full text of file. Nothing is persisted.
        Uses the selected conversation's pinned config, or the current
        config when nothing is selected. Errors propagate.
        """
        if not self._has_valid_config():
            self._notify("on_config_required")
            raise ConfigurationRequired("Configure an endpoint before extracting embeddings")

        current = self.current_conversation
        config = current.api_config if current else self.api_config
        text = await file.read_text()
        vector = await self.gateway.get_embedding(config, config.model, text)
        result = EmbeddingResult(file_name=file.name, vector=tuple(vector))
        logger.info("Extracted %d-dimensional embedding from %s", result.dimensions, file.name)
        self._notify("on_embeddings", result)
        return result
