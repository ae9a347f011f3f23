"""
Conversation Store
==================

Bounded multi-turn message history keyed by conversation id.

Used by stateful backends (text generation) to persist turns between
calls. The dispatcher never reads it; callers reach it through the text
generation backend or the conversations API to read or clear history.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Any

DEFAULT_CONVERSATION_ID = "default"

@dataclass(frozen=True)
class Message:
    role: str
    content: str
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return {"role": self.role, "content": self.content, "timestamp": self.timestamp}

@dataclass
class ConversationRecord:
    """Ordered turns, capped at ``max_length`` by evicting the oldest."""

    id: str
    max_length: int = 20
    messages: list[Message] = field(default_factory=list)
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)

    def add(self, role: str, content: str) -> Message:
        message = Message(role=role, content=content)
        self.messages.append(message)
        overflow = len(self.messages) - self.max_length
        if overflow > 0:
            del self.messages[:overflow]
        self.updated_at = time.time()
        return message

    def clear(self) -> None:
        self.messages.clear()
        self.updated_at = time.time()

class ConversationStore:
    """
    Conversation histories keyed by id. ``None`` means the default session.

    Usage:
        store = ConversationStore(max_length=20)
        store.add_message("trip-42", "user", "What is this building?")
        store.history("trip-42")
        store.clear("trip-42")
    """

    def __init__(self, max_length: int = 20) -> None:
        if max_length < 1:
            raise ValueError(f"max_length must be >= 1, got {max_length}")
        self.max_length = max_length
        self._records: dict[str, ConversationRecord] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _key(conversation_id: str | None) -> str:
        return conversation_id or DEFAULT_CONVERSATION_ID

    def get_or_create(self, conversation_id: str | None = None) -> ConversationRecord:
        key = self._key(conversation_id)
        with self._lock:
            record = self._records.get(key)
            if record is None:
                record = ConversationRecord(id=key, max_length=self.max_length)
                self._records[key] = record
            return record

    def add_message(self, conversation_id: str | None, role: str, content: str) -> Message:
        key = self._key(conversation_id)
        with self._lock:
            record = self._records.get(key)
            if record is None:
                record = ConversationRecord(id=key, max_length=self.max_length)
                self._records[key] = record
            return record.add(role, content)

    def get(self, conversation_id: str | None = None) -> ConversationRecord | None:
        with self._lock:
            return self._records.get(self._key(conversation_id))

    def history(self, conversation_id: str | None = None) -> list[Message]:
        """Copy of the turns, oldest first. Empty for unknown ids."""
        with self._lock:
            record = self._records.get(self._key(conversation_id))
            return list(record.messages) if record else []

    def clear(self, conversation_id: str | None = None) -> bool:
        """Empty one conversation. Returns False if it did not exist."""
        with self._lock:
            record = self._records.get(self._key(conversation_id))
            if record is None:
                return False
            record.clear()
            return True

    def remove(self, conversation_id: str | None = None) -> bool:
        with self._lock:
            return self._records.pop(self._key(conversation_id), None) is not None

    def ids(self) -> list[str]:
        with self._lock:
            return list(self._records)

    def __len__(self) -> int:
        return len(self._records)
