"""
Pytest will auto-discover / import this file called 'conftest.py'.
This file defines fixtures/variables required for testing multiple layers.
"""

from typing import Callable, Generator
from uuid import UUID, uuid4

import pytest
from sqlalchemy import StaticPool, create_engine
from sqlalchemy.orm import Session, sessionmaker

from src.db.schema import Base, DBCard, DBList
from src.db.sql_repository import SQLOrderedCollectionStore

# Setup an in-memory SQLite database for testing
DATABASE_URL = "sqlite:///:memory:"
engine = create_engine(
    DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = sessionmaker(autoflush=False, bind=engine)


@pytest.fixture
def db_session() -> Generator[Session, None, None]:
    """Connection to a test database. Tables are removed at teardown to make the tests independent of each other."""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def other_session(db_session: Session) -> Generator[Session, None, None]:
    """A second, independent session on the same database: another worker writing concurrently."""
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def store(db_session: Session) -> SQLOrderedCollectionStore:
    """Store without retry jitter, so conflict tests do not sleep."""
    return SQLOrderedCollectionStore(db_session, retry_jitter=0.0)


@pytest.fixture
def board_id(store: SQLOrderedCollectionStore) -> UUID:
    return store.create_board("Roadmap")


# Seeding helpers write rows directly, so tests can start from exact (also awkward) positions.
SeedLists = Callable[[UUID, list[float]], list[UUID]]
SeedCards = Callable[[UUID, list[float]], list[UUID]]


@pytest.fixture
def seed_lists(db_session: Session) -> SeedLists:
    def _seed(board: UUID, positions: list[float]) -> list[UUID]:
        ids = [uuid4() for _ in positions]
        for number, (list_id, position) in enumerate(zip(ids, positions)):
            db_session.add(
                DBList(id=list_id, board_id=board, title=f"List {number}", position=position)
            )
        db_session.commit()
        return ids

    return _seed


@pytest.fixture
def seed_cards(db_session: Session) -> SeedCards:
    def _seed(list_id: UUID, positions: list[float]) -> list[UUID]:
        ids = [uuid4() for _ in positions]
        for number, (card_id, position) in enumerate(zip(ids, positions)):
            db_session.add(
                DBCard(id=card_id, list_id=list_id, title=f"Card {number}", position=position)
            )
        db_session.commit()
        return ids

    return _seed
