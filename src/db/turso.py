"""Turso/libSQL database client wrapper."""

import logging
from typing import Any

from libsql_client import Client, ResultSet, create_client

from src.config import settings

logger = logging.getLogger(__name__)

# (sql, params) pair or bare SQL, as accepted by libsql_client batches
Statement = str | tuple[str, list[Any]]


class TursoClient:
    """Wrapper for Turso/libSQL async client.

    Supports both cloud Turso (with auth token) and local SQLite files.
    Usable as an async context manager:

        async with TursoClient(url="file:contacts.db") as db:
            await db.execute("SELECT 1")
    """

    def __init__(
        self,
        url: str | None = None,
        auth_token: str | None = None,
    ):
        """Initialize client with connection parameters.

        Args:
            url: Database URL. Defaults to settings or local file.
            auth_token: Auth token for Turso cloud. Defaults to settings.
        """
        self.url = url or settings.turso_database_url or "file:local.db"
        self.auth_token = auth_token or settings.turso_auth_token
        self._client: Client | None = None

    async def __aenter__(self) -> "TursoClient":
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def connect(self) -> None:
        """Establish database connection."""
        if self._client is not None:
            return

        if self.auth_token and self.url.startswith("libsql://"):
            self._client = create_client(url=self.url, auth_token=self.auth_token)
        else:
            self._client = create_client(url=self.url)

        logger.info(f"Connected to contact store: {self.url}")

    def _require_client(self) -> Client:
        if self._client is None:
            msg = "Not connected. Call connect() first."
            raise RuntimeError(msg)
        return self._client

    async def execute(
        self,
        sql: str,
        params: list[Any] | None = None,
    ) -> ResultSet:
        """Execute a SQL statement.

        Args:
            sql: SQL query with ? placeholders
            params: Query parameters

        Returns:
            ResultSet with rows and metadata
        """
        return await self._require_client().execute(sql, params or [])

    async def execute_batch(self, statements: list[Statement]) -> list[ResultSet]:
        """Execute multiple SQL statements as one transaction.

        Either every statement is applied or none is.

        Args:
            statements: SQL strings or (sql, params) tuples

        Returns:
            One ResultSet per statement
        """
        client = self._require_client()
        logger.debug(f"Executing batch of {len(statements)} statements")
        return await client.batch(statements)

    async def close(self) -> None:
        """Close the database connection."""
        if self._client:
            await self._client.close()
            self._client = None
            logger.info("Database connection closed")
