"""
chatbench — a local chat and embeddings bench for any OpenAI- or
Ollama-style inference endpoint.
"""

__version__ = "0.3.0"
