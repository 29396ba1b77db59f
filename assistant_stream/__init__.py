"""Streaming client for the ads dashboard's conversational assistant."""

from .client import AssistantClient, AssistantRequest
from .config import AssistantConfig, load_config
from .conversation import ConversationObserver, Message, NullObserver
from .errors import (
    AssistantStreamError,
    CancellationError,
    TransportError,
    UnsupportedStreamError,
)
from .session import (
    CANCELLED,
    COMPLETED,
    FAILED,
    IDLE,
    SENDING,
    STREAMING,
    CancellationToken,
    ConversationController,
)

__all__ = [
    "AssistantClient",
    "AssistantConfig",
    "AssistantRequest",
    "AssistantStreamError",
    "CANCELLED",
    "COMPLETED",
    "CancellationError",
    "CancellationToken",
    "ConversationController",
    "ConversationObserver",
    "FAILED",
    "IDLE",
    "Message",
    "NullObserver",
    "SENDING",
    "STREAMING",
    "TransportError",
    "UnsupportedStreamError",
    "load_config",
]
