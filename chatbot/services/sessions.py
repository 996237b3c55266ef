"""
Session Store

One row per device holding the current conversation state. Rows are
created on first contact and refreshed on every turn.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from chatbot.database import dialect_insert
from chatbot.models import CartLine, ChatSession, ConversationState, utcnow

logger = logging.getLogger(__name__)


class SessionStore:
    """Persists per-device conversation state."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, device_id: str) -> Optional[ChatSession]:
        result = await self.db.execute(
            select(ChatSession)
            .where(ChatSession.device_id == device_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_or_create(self, device_id: str) -> ChatSession:
        """
        Fetch the device's session, creating it in main_menu if absent.

        Creation and the activity refresh are a single
        INSERT ... ON CONFLICT DO UPDATE, so two first-contact requests
        for the same device can never produce two rows.
        """
        now = utcnow()
        stmt = dialect_insert(self.db, ChatSession).values(
            device_id=device_id,
            state=ConversationState.MAIN_MENU,
            created_at=now,
            last_activity=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["device_id"],
            set_={"last_activity": now},
        )
        await self.db.execute(stmt)

        session = await self.get(device_id)
        logger.debug(f"Session {device_id} loaded in state {session.state.value}")
        return session

    async def set_state(self, device_id: str, state: ConversationState) -> None:
        """Overwrite the state unconditionally and refresh activity."""
        now = utcnow()
        stmt = dialect_insert(self.db, ChatSession).values(
            device_id=device_id,
            state=state,
            created_at=now,
            last_activity=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["device_id"],
            set_={"state": stmt.excluded.state, "last_activity": now},
        )
        await self.db.execute(stmt)

    async def reset_state(
        self,
        device_id: str,
        expected: ConversationState,
        new: ConversationState = ConversationState.MAIN_MENU,
    ) -> bool:
        """
        Move the session to `new` only if it is still in `expected`.

        Returns:
            True when a row changed
        """
        result = await self.db.execute(
            update(ChatSession)
            .where(
                ChatSession.device_id == device_id,
                ChatSession.state == expected,
            )
            .values(state=new, last_activity=utcnow())
            .execution_options(synchronize_session=False)
        )
        changed = result.rowcount > 0
        if changed:
            logger.info(f"Session {device_id}: {expected.value} -> {new.value}")
        return changed

    async def purge_inactive(self, before: datetime) -> int:
        """
        Delete sessions idle since `before`, with their carts.

        Placed orders are kept.

        Returns:
            Number of sessions removed
        """
        stale = select(ChatSession.device_id).where(ChatSession.last_activity < before)

        await self.db.execute(
            delete(CartLine)
            .where(CartLine.device_id.in_(stale))
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(
            delete(ChatSession)
            .where(ChatSession.last_activity < before)
            .execution_options(synchronize_session=False)
        )
        purged = result.rowcount
        logger.info(f"Purged {purged} sessions idle since {before.isoformat()}")
        return purged
