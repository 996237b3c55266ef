"""
Celery Tasks
Background maintenance jobs that run outside the request path.
"""

import asyncio
import logging
import time
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from chatbot.celery_worker import celery_app
from chatbot.core.config import get_settings
from chatbot.database import unit_of_work
from chatbot.models import utcnow
from chatbot.services.sessions import SessionStore

logger = logging.getLogger(__name__)


async def purge_idle_sessions(
    retention_days: int,
    database_url: Optional[str] = None,
    now: Optional[datetime] = None,
) -> int:
    """
    Delete sessions idle for more than `retention_days`.

    Uses its own engine: each Celery run gets a fresh event loop and the
    application's pooled connections cannot cross loops.
    """
    cutoff = (now or utcnow()) - timedelta(days=retention_days)
    engine = create_async_engine(
        database_url or get_settings().database_url,
        poolclass=NullPool,
    )
    session_maker = async_sessionmaker(bind=engine, expire_on_commit=False)

    try:
        async with session_maker() as db:
            async with unit_of_work(db):
                return await SessionStore(db).purge_inactive(cutoff)
    finally:
        await engine.dispose()


@celery_app.task(
    bind=True,
    max_retries=3,
    default_retry_delay=60,
    autoretry_for=(Exception,),
    retry_backoff=True
)
def purge_stale_sessions(self, retention_days: Optional[int] = None) -> dict:
    """
    Retention policy for conversation sessions.

    Placed orders are never touched; only idle sessions and their carts.
    """
    retention_days = retention_days or get_settings().session_retention_days
    start_time = time.time()

    purged = asyncio.run(purge_idle_sessions(retention_days))

    elapsed = round(time.time() - start_time, 3)
    logger.info(
        f"Task {self.request.id}: purged {purged} sessions "
        f"older than {retention_days} days in {elapsed}s"
    )
    return {
        'success': True,
        'purged': purged,
        'retention_days': retention_days,
        'processing_time_seconds': elapsed,
    }


@celery_app.task
def health_check() -> dict:
    """
    Simple health check task to verify Celery is working.
    """
    return {
        'status': 'healthy',
        'worker': 'celery',
        'timestamp': datetime.now().isoformat()
    }
