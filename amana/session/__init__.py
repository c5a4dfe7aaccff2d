"""Conversation persistence."""

from amana.session.context_store import ContextStore, StoreError
from amana.session.conversation import Conversation

__all__ = ["Conversation", "ContextStore", "StoreError"]
