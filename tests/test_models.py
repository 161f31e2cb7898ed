"""
Tests for conversation data models.
Run with: pytest tests/test_models.py
"""

from dataclasses import FrozenInstanceError

import pytest

from chatbench.models import (
    DEFAULT_TITLE,
    APIConfig,
    Attachment,
    Conversation,
    Message,
    derive_title,
)


CONFIG = APIConfig(hostname="localhost:11434", model="llama3.2", api_key="Bearer sk-x")


# ---------------------------------------------------------------------------
# Titles
# ---------------------------------------------------------------------------

def test_title_short_message_unchanged():
    assert derive_title("Hello world") == "Hello world"


def test_title_long_message_truncated():
    """60 characters -> first 50 plus '...'."""
    assert derive_title("a" * 60) == "a" * 50 + "..."


def test_title_exactly_at_limit_not_truncated():
    assert derive_title("b" * 50) == "b" * 50


def test_first_message_names_conversation():
    c = Conversation.new(CONFIG, "c1", now=1000)
    assert c.title == DEFAULT_TITLE

    c = c.with_message(Message(role="user", content="Hello world", timestamp=1001), now=1001)
    assert c.title == "Hello world"

    c = c.with_message(Message(role="assistant", content="Hi there", timestamp=1002), now=1002)
    assert c.title == "Hello world"
    assert c.updated_at == 1002
    assert c.created_at == 1000


# ---------------------------------------------------------------------------
# Conversation lifecycle
# ---------------------------------------------------------------------------

def test_new_conversation_fields():
    c = Conversation.new(CONFIG, "abc", now=42)
    assert c.id == "abc"
    assert c.messages == ()
    assert c.created_at == c.updated_at == 42
    assert c.api_config == CONFIG


def test_with_message_leaves_original_untouched():
    """Appending returns a new conversation; snapshots stay as they were."""
    c = Conversation.new(CONFIG, "abc", now=1)
    c2 = c.with_message(Message(role="user", content="x"), now=2)
    assert len(c.messages) == 0
    assert len(c2.messages) == 1
    assert c2.messages[-1].content == "x"


def test_models_are_immutable():
    c = Conversation.new(CONFIG, "abc", now=1)
    with pytest.raises(FrozenInstanceError):
        c.title = "changed"


def test_unknown_role_rejected():
    with pytest.raises(ValueError):
        Message(role="tool", content="x")


def test_openai_format_drops_attachments_and_timestamps():
    m = Message(
        role="user", content="see file", timestamp=5,
        attachments=(Attachment(name="a.png", type="image/png", data="AAAA"),),
    )
    assert m.to_openai_format() == {"role": "user", "content": "see file"}


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

def test_conversation_dict_round_trip():
    c = Conversation.new(CONFIG, "c1", now=10)
    c = c.with_message(
        Message(
            role="user", content="hi", timestamp=11,
            attachments=(Attachment(name="n.txt", type="text/plain", data="aGk="),),
        ),
        now=11,
    )
    c = c.with_message(Message(role="assistant", content="hello", timestamp=12), now=12)
    assert Conversation.from_dict(c.to_dict()) == c


def test_absent_attachments_read_as_empty():
    m = Message.from_dict({"role": "assistant", "content": "ok", "timestamp": 1})
    assert m.attachments == ()
    m = Message.from_dict({"role": "assistant", "content": "ok", "timestamp": 1, "attachments": None})
    assert m.attachments == ()


def test_message_without_attachments_omits_field():
    assert "attachments" not in Message(role="user", content="x", timestamp=1).to_dict()


def test_api_config_validity():
    assert CONFIG.is_valid
    assert not APIConfig(hostname="host", model="").is_valid
    assert not APIConfig(hostname="  ", model="m").is_valid


def test_api_config_without_key():
    cfg = APIConfig.from_dict({"hostname": "h", "model": "m"})
    assert cfg.api_key is None
    assert "api_key" not in cfg.to_dict()


def test_api_config_empty_key_reads_as_none():
    cfg = APIConfig(hostname="h", model="m", api_key="")
    assert cfg.api_key is None
    assert APIConfig.from_dict(cfg.to_dict()) == cfg
