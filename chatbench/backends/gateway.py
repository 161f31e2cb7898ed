"""
Inference gateway — talks to any OpenAI- or Ollama-style HTTP endpoint.

Stateless: every call takes the APIConfig to use, and the hostname is
normalized on every request so edits apply without re-saving anything.
Only three routes are consumed:
  GET  /v1/models
  POST /v1/chat/completions   (always non-streaming)
  POST /v1/embeddings
"""

from __future__ import annotations

import logging
import time

import httpx

from chatbench.backends.base import (
    ConnectivityError,
    RequestFailure,
    UnexpectedFormatError,
    parse_dialects,
)
from chatbench.backends.dialects import CHAT_DIALECTS, EMBEDDING_DIALECTS, MODEL_DIALECTS
from chatbench.models import APIConfig, ModelInfo

logger = logging.getLogger(__name__)


def normalize_hostname(hostname: str) -> str:
    """
    Turn a user-entered host into a base URL.
    'localhost:11434' -> 'https://localhost:11434', 'http://x/' -> 'http://x'
    """
    normalized = hostname.strip()
    if not normalized.startswith(("http://", "https://")):
        normalized = "https://" + normalized
    if normalized.endswith("/"):
        normalized = normalized[:-1]
    return normalized


def build_headers(api_key: str | None = None) -> dict:
    """JSON content type, plus the credential verbatim when one is set."""
    headers = {"Content-Type": "application/json"}
    if api_key:
        headers["Authorization"] = api_key
    return headers


class InferenceGateway:
    """Uniform client over the supported endpoint dialects."""

    def __init__(self, timeout: float = 120):
        self.timeout = timeout

    async def _request(self, method: str, config: APIConfig, path: str, body: dict | None = None):
        url = f"{normalize_hostname(config.hostname)}{path}"
        headers = build_headers(config.api_key)
        t0 = time.monotonic()
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                if method == "GET":
                    resp = await client.get(url, headers=headers)
                else:
                    resp = await client.post(url, json=body, headers=headers)
        except httpx.TimeoutException as e:
            logger.warning("%s %s timed out after %.0fms", method, url, (time.monotonic() - t0) * 1000)
            raise ConnectivityError(f"Timeout after {self.timeout}s") from e
        except httpx.TransportError as e:
            logger.warning("%s %s failed: %s", method, url, e)
            raise ConnectivityError(str(e) or e.__class__.__name__) from e
        except httpx.InvalidURL as e:
            logger.warning("%s %s rejected: %s", method, url, e)
            raise ConnectivityError(f"Invalid URL {url}: {e}") from e

        logger.debug(
            "%s %s -> %d in %.0fms", method, url, resp.status_code, (time.monotonic() - t0) * 1000
        )
        return resp

    @staticmethod
    def _check_status(resp, label: str):
        if 200 <= resp.status_code < 300:
            return
        status_text = resp.reason_phrase or str(resp.status_code)
        body = resp.text
        raise RequestFailure(
            f"{label}: {status_text} - {body}" if body else f"{label}: {status_text}",
            status_code=resp.status_code,
            status_text=status_text,
            body=body,
        )

    @staticmethod
    def _json(resp, what: str):
        try:
            return resp.json()
        except ValueError as e:
            raise UnexpectedFormatError(f"Unexpected {what} response format") from e

    async def list_models(self, config: APIConfig) -> list[ModelInfo]:
        """
        Models advertised by the endpoint.
        An unrecognized response shape yields [] rather than an error.
        """
        resp = await self._request("GET", config, "/v1/models")
        self._check_status(resp, "Failed to fetch models")
        matched = parse_dialects(MODEL_DIALECTS, self._json(resp, "models"))
        if matched is None:
            logger.info("Model list from %s matched no dialect", config.hostname)
            return []
        return matched[1]

    async def send_chat(
        self,
        config: APIConfig,
        model: str,
        messages: list[dict],
        stream: bool = False,
    ) -> str:
        """Send a chat completion and return the assistant text."""
        if stream:
            logger.debug("Streaming requested but not supported; sending stream=false")
        body = {"model": model, "messages": messages, "stream": False}
        resp = await self._request("POST", config, "/v1/chat/completions", body)
        self._check_status(resp, "API request failed")
        matched = parse_dialects(CHAT_DIALECTS, self._json(resp, "chat"))
        if matched is None:
            raise UnexpectedFormatError("Unexpected response format")
        return matched[1]

    async def get_embedding(self, config: APIConfig, model: str, input_text: str) -> list[float]:
        """Embed input_text and return the vector."""
        body = {"model": model, "input": input_text}
        resp = await self._request("POST", config, "/v1/embeddings", body)
        self._check_status(resp, "Embedding request failed")
        matched = parse_dialects(EMBEDDING_DIALECTS, self._json(resp, "embedding"))
        if matched is None:
            raise UnexpectedFormatError("Unexpected embedding response format")
        return matched[1]
