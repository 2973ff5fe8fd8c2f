"""
Pytest configuration and shared fixtures.
"""

from datetime import date, datetime
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import create_async_engine

from bookstore.auth import CredentialService, get_credential_service
from bookstore.config import APIConfig
from bookstore.database import BookstoreDatabaseService
from bookstore.dependencies import get_db_service
from bookstore.main import create_app
from bookstore.models import BookRecord, UserPublic
from bookstore.schema import SchemaInitializer

TEST_SECRET = "test-signing-secret-with-enough-bytes-1234"


@pytest.fixture
def test_config(tmp_path):
    """Configuration pointing at a throwaway SQLite database."""
    return APIConfig(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'bookstore.db'}",
        token_secret=TEST_SECRET,
        bcrypt_rounds=4,
        log_format="console",
        log_level="WARNING",
    )


@pytest.fixture
def credential_service():
    """Credential service with a low bcrypt cost to keep tests fast."""
    return CredentialService(secret=TEST_SECRET, bcrypt_rounds=4)


@pytest.fixture
def mock_db_service():
    """Mock database service."""
    return AsyncMock(spec=BookstoreDatabaseService)


@pytest.fixture
def app(test_config, mock_db_service, credential_service):
    """Application wired to the mock database service."""
    application = create_app(test_config)
    application.dependency_overrides[get_db_service] = lambda: mock_db_service
    application.dependency_overrides[get_credential_service] = lambda: credential_service
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
def client(app):
    """Create test client."""
    return TestClient(app)


@pytest.fixture
def user_token(credential_service):
    return credential_service.issue_token({
        "username": "alice",
        "email": "alice@example.com",
        "role": "user",
    })


@pytest.fixture
def admin_token(credential_service):
    return credential_service.issue_token({
        "username": "root",
        "email": "root@example.com",
        "role": "admin",
    })


@pytest.fixture
def auth_headers(user_token):
    return {"Authorization": f"Bearer {user_token}"}


@pytest_asyncio.fixture
async def engine(test_config):
    """Async engine on a fresh SQLite file with both tables created."""
    engine = create_async_engine(test_config.get_database_url())
    await SchemaInitializer(test_config).ensure_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def db_service(engine):
    return BookstoreDatabaseService(engine)


@pytest.fixture
def sample_book_record():
    """Create a sample stored book."""
    return BookRecord(
        id=1,
        title="The ABC of Algorithms",
        genre="Computer Science",
        price=Decimal("39.90"),
        imagepath="uploads/abc.jpg",
        author="Ada Writer",
        publicationdate=date(2021, 5, 4),
        publisher="Example Press",
        description="An introduction to algorithms.",
        username="alice",
        email="alice@example.com",
        created_at=datetime(2024, 3, 1, 9, 30),
    )


@pytest.fixture
def sample_book_payload():
    """Book creation body as sent by the client."""
    return {
        "title": "The ABC of Algorithms",
        "genre": "Computer Science",
        "price": "39.90",
        "imagePath": "uploads/abc.jpg",
        "author": "Ada Writer",
        "publicationdate": "2021-05-04",
        "publisher": "Example Press",
        "description": "An introduction to algorithms.",
    }


@pytest.fixture
def sample_users():
    return [
        UserPublic(id=1, username="alice", email="alice@example.com",
                   location="Lisbon", phone="555-0100", role="user"),
        UserPublic(id=2, username="root", email="root@example.com",
                   location=None, phone=None, role="admin"),
    ]
