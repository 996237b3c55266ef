"""
Turn orchestration: load the session, run the engine, persist the state.
"""

import logging
import uuid
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from chatbot.database import unit_of_work
from chatbot.models import ChatSession, ConversationState
from chatbot.services.conversation import messages
from chatbot.services.conversation.engine import ConversationEngine, TurnOutcome
from chatbot.services.sessions import SessionStore

logger = logging.getLogger(__name__)


class ConversationService:
    """
    Entry points used by the chat routes.

    Each call is one unit of work. In particular the session's next state
    and any order placed during the turn commit together or not at all.
    """

    def __init__(self, db: AsyncSession, engine: Optional[ConversationEngine] = None):
        self.db = db
        self.sessions = SessionStore(db)
        self.engine = engine or ConversationEngine.for_session(db)

    async def start(self, device_id: Optional[str] = None) -> tuple[ChatSession, str]:
        """
        Open (or reopen) a conversation at the main menu.

        A device id is generated when the client does not have one yet.
        """
        device_id = device_id or str(uuid.uuid4())

        async with unit_of_work(self.db):
            await self.sessions.get_or_create(device_id)
            await self.sessions.set_state(device_id, ConversationState.MAIN_MENU)
            session = await self.sessions.get(device_id)

        logger.info(f"Conversation started for {device_id}")
        return session, messages.main_menu_text()

    async def handle_message(self, device_id: str, raw_message: str) -> TurnOutcome:
        """Process one inbound message end to end."""
        async with unit_of_work(self.db):
            session = await self.sessions.get_or_create(device_id)
            outcome = await self.engine.process(device_id, raw_message, session.state)
            await self.sessions.set_state(device_id, outcome.next_state)
        return outcome
