"""
Conversation Module

State machine, turn orchestration and reply texts for the chat flow.

Usage:
    from chatbot.services.conversation import ConversationService

    outcome = await ConversationService(db).handle_message(device_id, "1")
"""

from chatbot.services.conversation.engine import (
    ConversationEngine,
    PaymentDirective,
    TurnOutcome,
    TRANSITIONS,
)
from chatbot.services.conversation.service import ConversationService

__all__ = [
    "ConversationEngine",
    "ConversationService",
    "PaymentDirective",
    "TurnOutcome",
    "TRANSITIONS",
]
