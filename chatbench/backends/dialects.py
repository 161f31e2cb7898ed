"""
Response dialects for the three endpoint routes.

OpenAI-compatible servers (llama.cpp, vLLM, LocalAI, OpenAI itself) and
Ollama's native API return differently shaped JSON. Each route has an
ordered tuple of matchers; adding a dialect means appending one entry.
"""

from __future__ import annotations

from typing import Any

from chatbench.backends.base import ResponseDialect
from chatbench.models import ModelInfo


def _first(items: Any) -> dict | None:
    if isinstance(items, list) and items and isinstance(items[0], dict):
        return items[0]
    return None


# ---------------------------------------------------------------------------
# /v1/models
# ---------------------------------------------------------------------------

def _openai_models(data: Any) -> list[ModelInfo] | None:
    # {"data": [{"id": ..., "name"?: ...}]}
    if not isinstance(data, dict) or not isinstance(data.get("data"), list):
        return None
    return [
        ModelInfo(id=m["id"], name=m.get("name") or m["id"])
        for m in data["data"]
        if isinstance(m, dict) and m.get("id")
    ]


def _ollama_models(data: Any) -> list[ModelInfo] | None:
    # {"models": [{"name": ..., "model"?: ...}]}
    if not isinstance(data, dict) or not isinstance(data.get("models"), list):
        return None
    return [
        ModelInfo(id=m.get("model") or m["name"], name=m["name"])
        for m in data["models"]
        if isinstance(m, dict) and m.get("name")
    ]


MODEL_DIALECTS = (
    ResponseDialect("openai", _openai_models),
    ResponseDialect("ollama", _ollama_models),
)


# ---------------------------------------------------------------------------
# /v1/chat/completions
# ---------------------------------------------------------------------------

def _openai_chat(data: Any) -> str | None:
    # {"choices": [{"message": {"content": ...}}]}
    if not isinstance(data, dict):
        return None
    choice = _first(data.get("choices"))
    if choice is None or not isinstance(choice.get("message"), dict):
        return None
    content = choice["message"].get("content")
    return content if isinstance(content, str) else None


def _ollama_chat(data: Any) -> str | None:
    # {"message": {"content": ...}}
    if not isinstance(data, dict) or not isinstance(data.get("message"), dict):
        return None
    content = data["message"].get("content")
    return content if isinstance(content, str) else None


CHAT_DIALECTS = (
    ResponseDialect("openai", _openai_chat),
    ResponseDialect("ollama", _ollama_chat),
)


# ---------------------------------------------------------------------------
# /v1/embeddings
# ---------------------------------------------------------------------------

def _vector(value: Any) -> list[float] | None:
    if not isinstance(value, list) or not value:
        return None
    if not all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in value):
        return None
    return [float(v) for v in value]


def _openai_embedding(data: Any) -> list[float] | None:
    # {"data": [{"embedding": [...]}]}
    if not isinstance(data, dict):
        return None
    item = _first(data.get("data"))
    return _vector(item.get("embedding")) if item else None


def _ollama_embedding(data: Any) -> list[float] | None:
    # {"embedding": [...]}
    if not isinstance(data, dict):
        return None
    return _vector(data.get("embedding"))


EMBEDDING_DIALECTS = (
    ResponseDialect("openai", _openai_embedding),
    ResponseDialect("ollama", _ollama_embedding),
)
