"""Repository for persisting contacts.

Stores canonical contacts plus one raw payload per source platform.
Uses SQLite (via TursoClient) for persistence; the UNIQUE column on the
normalized email is what keeps concurrent ingestion jobs from creating
the same person twice.
"""

import json
from datetime import UTC, datetime
from typing import Any

from src.contacts.errors import DuplicateContactError, LookupFailure, PersistenceFailure
from src.contacts.normalize import (
    canonical_email,
    normalize_company,
    normalize_email,
    normalize_name,
    normalize_phone,
)
from src.contacts.schemas import Contact, SourcePayload
from src.db.turso import TursoClient

_CONTACT_COLUMNS = """
    id, name, email, phone, company, title, lead_source, sources_count,
    notes, last_activity_date, created_at
"""


def _is_unique_violation(exc: Exception) -> bool:
    """Check if a driver error is a UNIQUE constraint failure."""
    code = str(getattr(exc, "code", "") or "")
    return "UNIQUE constraint failed" in str(exc) or "CONSTRAINT_UNIQUE" in code


def _to_text(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _from_text(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


class ContactRepository:
    """Repository for persisting contacts.

    Reads raise LookupFailure, writes raise PersistenceFailure (or
    DuplicateContactError when the normalized email is already taken).
    Each write runs as one atomic batch.
    """

    def __init__(self, db_client: TursoClient):
        """Initialize repository with database client.

        Args:
            db_client: TursoClient instance for database operations
        """
        self._db = db_client

    async def initialize(self) -> None:
        """Create contact tables if not exists."""
        await self._db.execute_batch(
            [
                """
            CREATE TABLE IF NOT EXISTS contacts (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                email TEXT,
                email_normalized TEXT UNIQUE,
                email_canonical TEXT,
                phone TEXT,
                phone_normalized TEXT,
                company TEXT,
                company_normalized TEXT,
                name_normalized TEXT,
                title TEXT,
                lead_source TEXT NOT NULL DEFAULT '',
                sources_count INTEGER NOT NULL DEFAULT 0,
                notes TEXT,
                last_activity_date TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
            )
            """,
                """
            CREATE TABLE IF NOT EXISTS contact_sources (
                contact_id INTEGER NOT NULL REFERENCES contacts(id),
                source TEXT NOT NULL,
                source_id TEXT,
                source_data TEXT NOT NULL,
                updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
                PRIMARY KEY (contact_id, source)
            ) WITHOUT ROWID
            """,
                """
            CREATE INDEX IF NOT EXISTS idx_contacts_email_canonical
            ON contacts(email_canonical)
            """,
                """
            CREATE INDEX IF NOT EXISTS idx_contacts_phone
            ON contacts(phone_normalized)
            """,
                """
            CREATE INDEX IF NOT EXISTS idx_contacts_company
            ON contacts(company_normalized)
            """,
                """
            CREATE INDEX IF NOT EXISTS idx_contacts_name
            ON contacts(name_normalized)
            """,
            ]
        )

    async def get_by_id(self, contact_id: int) -> Contact | None:
        """Get a contact by ID."""
        contacts = await self._select("WHERE id = ?", [contact_id])
        return contacts[0] if contacts else None

    async def get_by_email(self, email: str | None) -> Contact | None:
        """Get the contact owning a normalized email.

        Args:
            email: Email in any case/whitespace form

        Returns:
            The unique contact with that email, or None
        """
        normalized = normalize_email(email)
        if not normalized:
            return None
        contacts = await self._select("WHERE email_normalized = ?", [normalized])
        return contacts[0] if contacts else None

    async def find_by_canonical_email(self, email: str | None) -> list[Contact]:
        """Find contacts whose email reduces to the same mailbox."""
        canonical = canonical_email(email)
        if not canonical:
            return []
        return await self._select(
            "WHERE email_canonical = ? ORDER BY id", [canonical]
        )

    async def find_by_phone(self, phone: str | None) -> list[Contact]:
        """Find contacts with the same digits-only phone."""
        normalized = normalize_phone(phone)
        if not normalized:
            return []
        return await self._select(
            "WHERE phone_normalized = ? ORDER BY id", [normalized]
        )

    async def find_fuzzy_pool(
        self,
        name: str | None,
        company: str | None,
        limit: int,
    ) -> list[Contact]:
        """Load contacts worth comparing by name.

        Blocks on the same normalized company or the same name initial so
        fuzzy comparison never scans the whole table. Every same-company
        contact is returned; only the same-initial block is capped.

        Args:
            name: Incoming name
            company: Incoming company
            limit: Maximum same-initial contacts to return (oldest first)

        Returns:
            Contacts ordered by ID
        """
        pool: dict[int, Contact] = {}

        company_key = normalize_company(company)
        if company_key:
            for contact in await self._select(
                "WHERE company_normalized = ? ORDER BY id", [company_key]
            ):
                pool[contact.id] = contact

        name_key = normalize_name(name)
        if name_key:
            for contact in await self._select(
                "WHERE substr(name_normalized, 1, 1) = ? ORDER BY id LIMIT ?",
                [name_key[0], limit],
            ):
                pool.setdefault(contact.id, contact)

        return [pool[contact_id] for contact_id in sorted(pool)]

    async def list_all(self, limit: int = 1000, offset: int = 0) -> list[Contact]:
        """List contacts ordered by ID."""
        return await self._select("ORDER BY id LIMIT ? OFFSET ?", [limit, offset])

    async def create(self, contact: Contact) -> Contact:
        """Insert a new contact and its source payloads atomically.

        Args:
            contact: Contact without an ID

        Returns:
            The contact with its store-assigned ID

        Raises:
            DuplicateContactError: Normalized email already exists
            PersistenceFailure: Any other write failure
        """
        statements: list[tuple[str, list[Any]]] = [
            (
                """
                INSERT INTO contacts
                    (name, email, email_normalized, email_canonical, phone,
                     phone_normalized, company, company_normalized,
                     name_normalized, title, lead_source, sources_count, notes,
                     last_activity_date, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                self._contact_params(contact) + [_to_text(contact.created_at)],
            )
        ]
        for source, payload in contact.source_data.items():
            statements.append(
                (
                    """
                    INSERT INTO contact_sources
                        (contact_id, source, source_id, source_data)
                    VALUES (last_insert_rowid(), ?, ?, ?)
                    """,
                    [source, payload.source_id, json.dumps(payload.data, default=str)],
                )
            )

        results = await self._write(statements, contact.email)
        return contact.model_copy(update={"id": results[0].last_insert_rowid})

    async def update(self, contact: Contact) -> Contact:
        """Write all fields and source payloads of a contact atomically.

        Raises:
            DuplicateContactError: Filling the email collided with another contact
            PersistenceFailure: Any other write failure
        """
        if contact.id is None:
            msg = "Cannot update a contact without an ID"
            raise PersistenceFailure(msg)

        statements: list[tuple[str, list[Any]]] = [
            (
                """
                UPDATE contacts SET
                    name = ?, email = ?, email_normalized = ?,
                    email_canonical = ?, phone = ?, phone_normalized = ?,
                    company = ?, company_normalized = ?, name_normalized = ?,
                    title = ?, lead_source = ?, sources_count = ?, notes = ?,
                    last_activity_date = ?, updated_at = CURRENT_TIMESTAMP
                WHERE id = ?
                """,
                self._contact_params(contact) + [contact.id],
            )
        ]
        for source, payload in contact.source_data.items():
            statements.append(
                (
                    """
                    INSERT INTO contact_sources
                        (contact_id, source, source_id, source_data)
                    SELECT id, ?, ?, ? FROM contacts WHERE id = ?
                    ON CONFLICT(contact_id, source)
                    DO UPDATE SET
                        source_id = excluded.source_id,
                        source_data = excluded.source_data,
                        updated_at = CURRENT_TIMESTAMP
                    """,
                    [
                        source,
                        payload.source_id,
                        json.dumps(payload.data, default=str),
                        contact.id,
                    ],
                )
            )

        results = await self._write(statements, contact.email)
        if results[0].rows_affected == 0:
            msg = f"Contact {contact.id} no longer exists"
            raise PersistenceFailure(msg)
        return contact

    def _contact_params(self, contact: Contact) -> list[Any]:
        """Column values shared by insert and update, in column order."""
        return [
            contact.name,
            contact.email,
            normalize_email(contact.email),
            canonical_email(contact.email),
            contact.phone,
            normalize_phone(contact.phone),
            contact.company,
            normalize_company(contact.company),
            normalize_name(contact.name),
            contact.title,
            contact.lead_source_text,
            contact.sources_count,
            contact.notes,
            _to_text(contact.last_activity_date),
        ]

    async def _write(
        self,
        statements: list[tuple[str, list[Any]]],
        email: str | None,
    ) -> list:
        """Run a write batch, translating driver errors."""
        try:
            return await self._db.execute_batch(statements)
        except Exception as e:
            if _is_unique_violation(e):
                raise DuplicateContactError(normalize_email(email)) from e
            msg = f"Contact write failed: {e}"
            raise PersistenceFailure(msg) from e

    async def _select(self, where: str, params: list[Any]) -> list[Contact]:
        """Load contacts (with source payloads) matching a WHERE/ORDER clause."""
        try:
            result = await self._db.execute(
                f"SELECT {_CONTACT_COLUMNS} FROM contacts {where}", params
            )
            contacts = [self._row_to_contact(row) for row in result.rows]
            if contacts:
                await self._attach_sources(contacts)
        except Exception as e:
            msg = f"Contact lookup failed: {e}"
            raise LookupFailure(msg) from e
        return contacts

    async def _attach_sources(self, contacts: list[Contact]) -> None:
        """Fill source_data for loaded contacts."""
        by_id = {c.id: c for c in contacts}
        placeholders = ", ".join("?" for _ in by_id)
        result = await self._db.execute(
            f"""
            SELECT contact_id, source, source_id, source_data
            FROM contact_sources
            WHERE contact_id IN ({placeholders})
            ORDER BY contact_id, source
            """,
            list(by_id),
        )
        for row in result.rows:
            contact = by_id[row[0]]
            contact.source_data[row[1]] = SourcePayload(
                source_id=row[2],
                data=json.loads(row[3]),
            )

    def _row_to_contact(self, row) -> Contact:
        lead_source = [s for s in (row[6] or "").split(",") if s]
        return Contact(
            id=row[0],
            name=row[1],
            email=row[2],
            phone=row[3],
            company=row[4],
            title=row[5],
            lead_source=lead_source,
            sources_count=row[7],
            notes=row[8],
            last_activity_date=_from_text(row[9]),
            created_at=_from_text(row[10]),
        )
