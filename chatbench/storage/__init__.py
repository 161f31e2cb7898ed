"""
Local persistence for chatbench conversations.
"""
from chatbench.storage.sqlite_store import ConversationStore, StorageError

__all__ = [
    "ConversationStore",
    "StorageError",
]
