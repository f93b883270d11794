"""End-to-end resolution tests against a temp SQLite database."""

import asyncio
from datetime import UTC, datetime

import pytest

from src.contacts.resolver import ContactResolver
from src.contacts.schemas import (
    Contact,
    IncomingRecord,
    MatchConfidence,
    ResolverConfig,
    SourcePlatform,
)
from src.repositories.contact_repo import ContactRepository


def _record(**kwargs) -> IncomingRecord:
    kwargs.setdefault("lead_source", SourcePlatform.CALENDLY)
    return IncomingRecord(**kwargs)


class TestScenarios:
    """Behavior observable through resolve() on a real store."""

    async def test_placeholder_name_and_missing_phone_filled(
        self, resolver: ContactResolver, contact_repo: ContactRepository
    ):
        """EXACT email match fills name and phone."""
        existing = await contact_repo.create(
            Contact(name="Unknown Contact", email="jane@acme.com", lead_source=["close"])
        )

        result = await resolver.resolve(
            _record(name="Jane Doe", email="jane@acme.com", phone="555-1234"),
            MatchConfidence.MEDIUM,
        )

        assert result.created is False
        assert result.confidence is MatchConfidence.EXACT
        assert result.contact.id == existing.id
        stored = await contact_repo.get_by_id(existing.id)
        assert stored.name == "Jane Doe"
        assert stored.phone == "555-1234"

    async def test_unknown_person_is_created(
        self, resolver: ContactResolver, contact_repo: ContactRepository
    ):
        result = await resolver.resolve(
            _record(name="Bob Lee", email="bob@x.com"), MatchConfidence.MEDIUM
        )

        assert result.created is True
        assert result.confidence is MatchConfidence.NONE
        stored = await contact_repo.get_by_email("bob@x.com")
        assert stored is not None
        assert stored.id == result.contact.id
        assert stored.lead_source == ["calendly"]
        assert stored.sources_count == 1

    async def test_fuzzy_name_and_company_fills_email(
        self, resolver: ContactResolver, contact_repo: ContactRepository
    ):
        existing = await contact_repo.create(
            Contact(name="Sam Park", company="Acme", lead_source=["close"])
        )

        result = await resolver.resolve(
            _record(name="Sam Park", company="Acme", email="sam@acme.com"),
            MatchConfidence.MEDIUM,
        )

        assert result.created is False
        assert result.confidence is MatchConfidence.MEDIUM
        stored = await contact_repo.get_by_id(existing.id)
        assert stored.email == "sam@acme.com"
        assert await contact_repo.get_by_email("sam@acme.com") == stored

    async def test_lead_sources_accumulate(
        self, resolver: ContactResolver, contact_repo: ContactRepository
    ):
        existing = await contact_repo.create(
            Contact(
                name="Jane Doe",
                email="jane@acme.com",
                lead_source=["close"],
                sources_count=1,
            )
        )

        await resolver.resolve(
            _record(name="Jane Doe", email="jane@acme.com"), MatchConfidence.MEDIUM
        )

        stored = await contact_repo.get_by_id(existing.id)
        assert set(stored.lead_source) == {"close", "calendly"}
        assert stored.sources_count == 2

    async def test_conflicting_company_kept_with_warning(
        self, resolver: ContactResolver, contact_repo: ContactRepository
    ):
        existing = await contact_repo.create(
            Contact(
                name="Jane Doe",
                email="jane@acme.com",
                company="Acme Inc",
                lead_source=["close"],
            )
        )

        result = await resolver.resolve(
            _record(name="Jane Doe", email="jane@acme.com", company="Acme Corp"),
            MatchConfidence.MEDIUM,
        )

        assert result.confidence is MatchConfidence.EXACT
        assert [w.field for w in result.warnings] == ["company"]
        stored = await contact_repo.get_by_id(existing.id)
        assert stored.company == "Acme Inc"

    async def test_low_match_below_threshold_creates(
        self, resolver: ContactResolver, contact_repo: ContactRepository
    ):
        """A name-only match is LOW and does not clear MEDIUM."""
        await contact_repo.create(Contact(name="Sam Park", lead_source=["close"]))

        result = await resolver.resolve(
            _record(name="Sam Park", email="sam@gmail.com"), MatchConfidence.MEDIUM
        )

        assert result.created is True
        assert result.confidence is MatchConfidence.LOW
        assert "below medium threshold" in result.reason

    async def test_low_threshold_accepts_name_only_match(
        self, resolver: ContactResolver, contact_repo: ContactRepository
    ):
        existing = await contact_repo.create(
            Contact(name="Sam Park", lead_source=["close"])
        )

        result = await resolver.resolve(
            _record(name="Sam Park", email="sam@gmail.com"), MatchConfidence.LOW
        )

        assert result.created is False
        assert result.confidence is MatchConfidence.LOW
        assert result.contact.id == existing.id

    async def test_plus_addressed_gmail_is_high(
        self, resolver: ContactResolver, contact_repo: ContactRepository
    ):
        existing = await contact_repo.create(
            Contact(name="John Doe", email="john.doe@gmail.com", lead_source=["close"])
        )

        result = await resolver.resolve(
            _record(name="John Doe", email="johndoe+calendly@gmail.com"),
            MatchConfidence.HIGH,
        )

        assert result.created is False
        assert result.confidence is MatchConfidence.HIGH
        stored = await contact_repo.get_by_id(existing.id)
        assert stored.email == "john.doe@gmail.com"


class TestInvariants:
    """Properties that hold across repeated and concurrent resolution."""

    async def test_resolving_twice_is_idempotent(
        self, resolver: ContactResolver, contact_repo: ContactRepository
    ):
        record = _record(
            name="Jane Doe",
            email="jane@acme.com",
            notes="Booked intro call",
            created_at=datetime(2024, 5, 1, tzinfo=UTC),
        )

        first = await resolver.resolve(record, MatchConfidence.MEDIUM)
        second = await resolver.resolve(record, MatchConfidence.MEDIUM)

        assert first.created is True
        assert second.created is False
        assert second.changed_fields == []
        stored = await contact_repo.get_by_id(first.contact.id)
        assert stored.notes == "Booked intro call"
        assert stored.lead_source == ["calendly"]

    async def test_multi_paragraph_note_not_duplicated(
        self, resolver: ContactResolver, contact_repo: ContactRepository
    ):
        record = _record(email="j@acme.com", notes="Q1 answer\n\nQ2 answer")

        first = await resolver.resolve(record, MatchConfidence.MEDIUM)
        second = await resolver.resolve(record, MatchConfidence.MEDIUM)

        assert second.changed_fields == []
        stored = await contact_repo.get_by_id(first.contact.id)
        assert stored.notes.count("Q1 answer") == 1

    async def test_name_and_company_match_found_past_pool_limit(
        self, contact_repo: ContactRepository
    ):
        """Same-company contacts are compared even when the initial block is full."""
        resolver = ContactResolver(contact_repo, ResolverConfig(fuzzy_pool_limit=5))
        for i in range(6):
            await contact_repo.create(
                Contact(name=f"Sue Other{i}", lead_source=["close"])
            )
        target = await contact_repo.create(
            Contact(name="Sam Park", company="Acme", lead_source=["close"])
        )

        result = await resolver.resolve(
            _record(name="Sam Park", company="Acme", email="sam@acme.com"),
            MatchConfidence.MEDIUM,
        )

        assert result.created is False
        assert result.confidence is MatchConfidence.MEDIUM
        assert result.contact.id == target.id
        assert len(await contact_repo.list_all()) == 7

    async def test_email_case_variants_resolve_to_one_contact(
        self, resolver: ContactResolver, contact_repo: ContactRepository
    ):
        first = await resolver.resolve(
            _record(name="Jane Doe", email="Jane@Acme.com"), MatchConfidence.EXACT
        )
        second = await resolver.resolve(
            _record(
                name="Jane Doe",
                email="  jane@acme.COM",
                lead_source=SourcePlatform.TYPEFORM,
            ),
            MatchConfidence.EXACT,
        )

        assert second.created is False
        assert second.contact.id == first.contact.id
        assert len(await contact_repo.list_all()) == 1

    async def test_concurrent_resolves_create_one_contact(
        self, resolver: ContactResolver, contact_repo: ContactRepository
    ):
        """Parallel jobs seeing the same new email end with one contact."""
        records = [
            _record(name="Jane Doe", email="jane@acme.com"),
            _record(
                name="Jane Doe",
                email="JANE@acme.com",
                lead_source=SourcePlatform.TYPEFORM,
            ),
        ]

        results = await asyncio.gather(
            *(resolver.resolve(r, MatchConfidence.MEDIUM) for r in records)
        )

        assert len({r.contact.id for r in results}) == 1
        contacts = await contact_repo.list_all()
        assert len(contacts) == 1
        assert set(contacts[0].lead_source) == {"calendly", "typeform"}

    @pytest.mark.parametrize(
        "threshold",
        [
            MatchConfidence.EXACT,
            MatchConfidence.HIGH,
            MatchConfidence.MEDIUM,
            MatchConfidence.LOW,
        ],
    )
    async def test_exact_email_matches_at_any_threshold(
        self,
        resolver: ContactResolver,
        contact_repo: ContactRepository,
        threshold: MatchConfidence,
    ):
        existing = await contact_repo.create(
            Contact(name="Jane Doe", email="jane@acme.com", lead_source=["close"])
        )

        result = await resolver.resolve(
            _record(name="Someone Else", email="jane@acme.com"), threshold
        )

        assert result.created is False
        assert result.contact.id == existing.id

    async def test_merge_never_empties_fields(
        self, resolver: ContactResolver, contact_repo: ContactRepository
    ):
        existing = await contact_repo.create(
            Contact(
                name="Jane Doe",
                email="jane@acme.com",
                phone="555-123-4567",
                company="Acme",
                title="CEO",
                notes="VIP",
                lead_source=["close"],
            )
        )

        await resolver.resolve(_record(email="jane@acme.com"), MatchConfidence.MEDIUM)

        stored = await contact_repo.get_by_id(existing.id)
        assert stored.name == "Jane Doe"
        assert stored.phone == "555-123-4567"
        assert stored.company == "Acme"
        assert stored.title == "CEO"
        assert stored.notes == "VIP"
