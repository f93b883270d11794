"""Pytest configuration and fixtures."""

from collections.abc import AsyncIterator
from pathlib import Path

import pytest

from src.contacts.resolver import ContactResolver
from src.contacts.schemas import ResolverConfig
from src.db.turso import TursoClient
from src.repositories.contact_repo import ContactRepository


@pytest.fixture
async def db_client(tmp_path: Path) -> AsyncIterator[TursoClient]:
    """Create a temp file database client for testing."""
    db_path = tmp_path / "test_contacts.db"
    client = TursoClient(url=f"file:{db_path}")
    await client.connect()
    yield client
    await client.close()


@pytest.fixture
async def contact_repo(db_client: TursoClient) -> ContactRepository:
    """Create ContactRepository with initialized tables."""
    repo = ContactRepository(db_client)
    await repo.initialize()
    return repo


@pytest.fixture
def resolver_config() -> ResolverConfig:
    """Default resolver tuning."""
    return ResolverConfig()


@pytest.fixture
def resolver(
    contact_repo: ContactRepository, resolver_config: ResolverConfig
) -> ContactResolver:
    """Resolver backed by a real temp database."""
    return ContactResolver(contact_repo, resolver_config)
