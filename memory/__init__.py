# Memory module - Conversation history for model requests
# Append-only log, trimmed window per request

from .conversation import ConversationMemory, ConversationTurn, TurnRole

__all__ = [
    "ConversationMemory",
    "ConversationTurn",
    "TurnRole",
]
