"""
Menu Seeding Script

Creates the tables if needed and inserts the default menu.
Run from project root: python scripts/seed_menu.py

Existing items are left untouched, so the script is safe to re-run.

Author: Khalil_Bannouri
Version: 1.0.0
"""

import asyncio
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from chatbot import database
from chatbot.core.config import get_settings, setup_logging
from chatbot.seed import seed_menu


async def main() -> int:
    settings = get_settings()
    print("=" * 60)
    print("🌱 MENU SEEDING")
    print("=" * 60)
    print(f"🗄️  Database: {settings.database_url.split('@')[-1]}")

    await database.init_db()
    async with database.async_session_maker() as db:
        inserted = await seed_menu(db)
    await database.engine.dispose()

    print(f"\n✅ {inserted} new menu items inserted")
    print("=" * 60)
    return inserted


if __name__ == "__main__":
    setup_logging()
    asyncio.run(main())
