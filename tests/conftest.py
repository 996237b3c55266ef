import os
from decimal import Decimal

# Settings are cached on first import, so the environment must be ready first
os.environ["ENV_MODE"] = "development"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["SEED_MENU_ON_STARTUP"] = "false"
os.environ["BUSINESS_TIMEZONE"] = "Africa/Lagos"
os.environ["CURRENCY_SYMBOL"] = "₦"
os.environ["MOCK_PAYMENT_FAILURE_RATE"] = "0.0"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import NullPool

import chatbot.database as database
from chatbot.database import Base, unit_of_work
from chatbot.models import MenuItem
from chatbot.services.conversation import ConversationEngine
from chatbot.services.payment import MockPaymentService, reset_payment_service
from chatbot.services.sessions import SessionStore

from tests.helpers import DEVICE, FIXED_NOW  # noqa: F401


def _menu():
    return [
        MenuItem(id=1, name="Jollof Rice", description="Party jollof", price=Decimal("2500.00"), category="Main Course"),
        MenuItem(id=2, name="Fried Rice", description=None, price=Decimal("2300.00"), category="Main Course"),
        MenuItem(id=3, name="Chapman", description="Chilled", price=Decimal("800.00"), category="Drinks"),
        MenuItem(id=4, name="Moi Moi", description=None, price=Decimal("650.50"), category="Sides"),
        MenuItem(id=5, name="Ofada Rice", description=None, price=Decimal("2800.00"), category="Main Course", available=False),
    ]


def _prepare_database(path) -> None:
    """Create the schema and seed the menu with a plain sqlite3 engine."""
    engine = create_engine(f"sqlite:///{path}")
    Base.metadata.create_all(bind=engine)
    with Session(engine) as session:
        session.add_all(_menu())
        session.commit()
    engine.dispose()


@pytest.fixture
def database_path(tmp_path):
    path = tmp_path / "chat.db"
    _prepare_database(path)
    return path


@pytest.fixture
def database_url(database_path):
    return f"sqlite+aiosqlite:///{database_path}"


@pytest.fixture
async def db_engine(database_url):
    engine = create_async_engine(database_url, poolclass=NullPool)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(db_engine):
    return async_sessionmaker(bind=db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
async def device(db):
    """A device that has already opened a conversation."""
    async with unit_of_work(db):
        await SessionStore(db).get_or_create(DEVICE)
    return DEVICE


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def engine(db, clock):
    return ConversationEngine.for_session(db, clock=clock)


@pytest.fixture
def payments():
    return MockPaymentService()


@pytest.fixture
def client(database_url, monkeypatch):
    """FastAPI TestClient bound to the per-test SQLite file."""
    from chatbot.main import app

    engine = create_async_engine(database_url, poolclass=NullPool)
    maker = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)

    # Patch the database module used by the app
    monkeypatch.setattr(database, "engine", engine)
    monkeypatch.setattr(database, "async_session_maker", maker)

    async def override_get_db():
        async with maker() as session:
            yield session

    app.dependency_overrides[database.get_db] = override_get_db
    reset_payment_service()

    yield TestClient(app)

    app.dependency_overrides.clear()
    reset_payment_service()
