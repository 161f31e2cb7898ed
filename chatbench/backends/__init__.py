"""
Endpoint access for chatbench.
One gateway, two response dialects (OpenAI-compatible and Ollama).
"""
from chatbench.backends.base import (
    ConnectivityError,
    GatewayError,
    RequestFailure,
    ResponseDialect,
    UnexpectedFormatError,
)
from chatbench.backends.gateway import InferenceGateway, normalize_hostname

__all__ = [
    "InferenceGateway",
    "normalize_hostname",
    "ResponseDialect",
    "GatewayError",
    "ConnectivityError",
    "RequestFailure",
    "UnexpectedFormatError",
]
