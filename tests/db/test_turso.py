"""Tests for TursoClient."""

from pathlib import Path

import pytest

from src.db.turso import TursoClient


@pytest.mark.asyncio
async def test_execute_requires_connection(tmp_path: Path):
    """Queries before connect() should fail loudly."""
    client = TursoClient(url=f"file:{tmp_path / 'x.db'}")

    with pytest.raises(RuntimeError, match="Not connected"):
        await client.execute("SELECT 1")


@pytest.mark.asyncio
async def test_context_manager_connects_and_closes(tmp_path: Path):
    """Should connect on enter and close on exit."""
    async with TursoClient(url=f"file:{tmp_path / 'ctx.db'}") as client:
        result = await client.execute("SELECT 1")
        assert result.rows[0][0] == 1

    with pytest.raises(RuntimeError):
        await client.execute("SELECT 1")


@pytest.mark.asyncio
async def test_batch_is_atomic(db_client: TursoClient):
    """A failing statement rolls back the whole batch."""
    await db_client.execute("CREATE TABLE t (id INTEGER PRIMARY KEY, v TEXT UNIQUE)")

    with pytest.raises(Exception):
        await db_client.execute_batch(
            [
                ("INSERT INTO t (v) VALUES (?)", ["a"]),
                ("INSERT INTO t (v) VALUES (?)", ["a"]),
            ]
        )

    result = await db_client.execute("SELECT COUNT(*) FROM t")
    assert result.rows[0][0] == 0


@pytest.mark.asyncio
async def test_batch_returns_result_per_statement(db_client: TursoClient):
    results = await db_client.execute_batch(
        [
            "CREATE TABLE t (id INTEGER PRIMARY KEY, v TEXT)",
            ("INSERT INTO t (v) VALUES (?)", ["a"]),
        ]
    )

    assert len(results) == 2
    assert results[1].last_insert_rowid == 1
