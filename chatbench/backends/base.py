"""
Base gateway abstractions.
Error types shared by every gateway call, and the response-dialect
matcher used to read the JSON shapes different servers return.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable

logger = logging.getLogger(__name__)


class GatewayError(Exception):
    """Base for every failure talking to an inference endpoint."""


class ConnectivityError(GatewayError):
    """Network unreachable, DNS failure, connection reset, timeout."""


class RequestFailure(GatewayError):
    """The endpoint answered with a non-2xx status."""

    def __init__(self, message: str, status_code: int = 0, status_text: str = "", body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.status_text = status_text
        self.body = body


class UnexpectedFormatError(GatewayError):
    """A 2xx response that matches no known dialect."""


@dataclass(frozen=True)
class ResponseDialect:
    """
    A named response-shape matcher.
    match() returns the extracted result, or None to decline.
    """
    name: str
    match: Callable[[Any], Any]

    def __repr__(self) -> str:
        return f"<ResponseDialect name={self.name!r}>"


def parse_dialects(dialects: tuple[ResponseDialect, ...], data: Any) -> tuple[str, Any] | None:
    """
    Try each dialect in priority order.
    Returns (dialect_name, result) for the first match, or None.
    """
    for dialect in dialects:
        result = dialect.match(data)
        if result is not None:
            logger.debug("Response matched dialect '%s'", dialect.name)
            return dialect.name, result
    return None
