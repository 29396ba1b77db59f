"""conversation.py — Conversation state and its observer.

Messages are frozen values. Every change to the conversation swaps in a new
Message, so snapshots handed to observers never change underneath them.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import List, Optional, Protocol, Tuple

USER = "user"
ASSISTANT = "assistant"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Message:
    id: str
    role: str
    content: str
    timestamp: datetime = field(default_factory=_utcnow)
    is_streaming: bool = False
    cached: bool = False

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(id=f"user-{uuid.uuid4().hex}", role=USER, content=content)

    @classmethod
    def placeholder(cls) -> "Message":
        """Empty assistant message that a stream will fill in."""
        return cls(
            id=f"assistant-{uuid.uuid4().hex}",
            role=ASSISTANT,
            content="",
            is_streaming=True,
        )


class ConversationObserver(Protocol):
    """Receives conversation updates. Called synchronously by the controller."""

    def on_messages(self, messages: Tuple[Message, ...]) -> None:
        ...

    def on_state(self, state: str) -> None:
        ...

    def on_error(self, error: Exception) -> None:
        ...


class NullObserver:
    """Observer that ignores everything."""

    def on_messages(self, messages: Tuple[Message, ...]) -> None:
        pass

    def on_state(self, state: str) -> None:
        pass

    def on_error(self, error: Exception) -> None:
        pass


class Conversation:
    """Ordered messages. Insertion order is significant."""

    def __init__(self) -> None:
        self._messages: List[Message] = []

    def __len__(self) -> int:
        return len(self._messages)

    def snapshot(self) -> Tuple[Message, ...]:
        return tuple(self._messages)

    def append(self, message: Message) -> None:
        self._messages.append(message)

    def get(self, message_id: str) -> Optional[Message]:
        for message in self._messages:
            if message.id == message_id:
                return message
        return None

    def update(self, message_id: str, **changes) -> Optional[Message]:
        """Replace one message with a modified copy. Returns the new value."""
        for index, message in enumerate(self._messages):
            if message.id == message_id:
                updated = replace(message, **changes)
                self._messages[index] = updated
                return updated
        return None

    def remove(self, message_id: str) -> bool:
        before = len(self._messages)
        self._messages = [m for m in self._messages if m.id != message_id]
        return len(self._messages) != before

    def last_user_message(self) -> Optional[Message]:
        for message in reversed(self._messages):
            if message.role == USER:
                return message
        return None

    def clear(self) -> None:
        self._messages = []


class MessageAccumulator:
    """Appends deltas to one placeholder message and publishes each step."""

    def __init__(
        self,
        conversation: Conversation,
        message_id: str,
        observer: ConversationObserver,
    ) -> None:
        self._conversation = conversation
        self._observer = observer
        self.message_id = message_id
        self.text = ""

    def apply(self, delta: str) -> None:
        self.text += delta
        self._conversation.update(self.message_id, content=self.text)
        self._observer.on_messages(self._conversation.snapshot())
