"""Test configuration."""
import os
from pathlib import Path
from typing import Generator

import pytest
from dotenv import load_dotenv
from faker import Faker
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# Set test environment before any imports
os.environ["ENV"] = "test"

# Load test environment variables
test_env_path = Path(__file__).parents[3] / ".env.test"
load_dotenv(test_env_path)

# Import after environment setup
from quickswipe.models.base import init_db  # noqa: E402
from quickswipe.models.models import User  # noqa: E402
from quickswipe.models.session_models import Word  # noqa: E402
from quickswipe.services.user_service import UserService  # noqa: E402
from quickswipe.services.word_service import WordCatalog  # noqa: E402

fake = Faker()


@pytest.fixture
def session_factory() -> Generator[sessionmaker, None, None]:
    """Session factory bound to a fresh in-memory database."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    try:
        yield factory
    finally:
        engine.dispose()


@pytest.fixture
def db(session_factory: sessionmaker) -> Generator[Session, None, None]:
    """Create a fresh database session for each test."""
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def user(db: Session) -> User:
    """Create a test user."""
    return UserService(db).create_user(username=fake.user_name())


@pytest.fixture
def catalog() -> WordCatalog:
    """A small catalog whose ids do not match their indices."""
    return WordCatalog([
        Word(id=101, word="abandon", pos="verb", level="B2", translation="покинуть"),
        Word(id=102, word="ability", pos="noun", level="A2", translation="способность"),
        Word(id=103, word="able", pos="adjective", level="A1"),
        Word(id=104, word="about", pos="preposition", level="A1", translation="о"),
        Word(id=105, word="above", pos="preposition", level="A1", translation="над"),
    ])
