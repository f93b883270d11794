"""Field-level merge policy for combining an incoming record into a contact.

Every contact field's merge behavior is one entry in FIELD_RULES:

    name                FILL_PLACEHOLDER  replace only an empty/placeholder name
    email               KEEP_ONCE_SET     fill when empty, never overwrite
    phone/company/title FILL_IF_EMPTY     fill when empty, warn on conflict
    lead_source         UNION             add the platform tag once
    notes               APPEND            append as a new paragraph, once
    last_activity_date  LATEST            later of the two timestamps
    source_data         PER_SOURCE        replace this platform's payload only

sources_count is derived from lead_source after the rules run.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

import structlog

from src.contacts.fuzzy_matcher import FuzzyMatcher
from src.contacts.normalize import is_blank, normalize_phone
from src.contacts.schemas import (
    ConflictingFieldWarning,
    Contact,
    IncomingRecord,
    ResolverConfig,
    SourcePayload,
)

logger = structlog.get_logger()


class MergeStrategy(str, Enum):
    """How a single field is merged."""

    FILL_PLACEHOLDER = "fill_placeholder"
    KEEP_ONCE_SET = "keep_once_set"
    FILL_IF_EMPTY = "fill_if_empty"
    UNION = "union"
    APPEND = "append"
    LATEST = "latest"
    PER_SOURCE = "per_source"


@dataclass(frozen=True)
class FieldRule:
    """Merge rule for one contact field."""

    field: str
    strategy: MergeStrategy


FIELD_RULES: tuple[FieldRule, ...] = (
    FieldRule("name", MergeStrategy.FILL_PLACEHOLDER),
    FieldRule("email", MergeStrategy.KEEP_ONCE_SET),
    FieldRule("phone", MergeStrategy.FILL_IF_EMPTY),
    FieldRule("company", MergeStrategy.FILL_IF_EMPTY),
    FieldRule("title", MergeStrategy.FILL_IF_EMPTY),
    FieldRule("lead_source", MergeStrategy.UNION),
    FieldRule("notes", MergeStrategy.APPEND),
    FieldRule("last_activity_date", MergeStrategy.LATEST),
    FieldRule("source_data", MergeStrategy.PER_SOURCE),
)


@dataclass
class MergeOutcome:
    """Result of merging one record into a contact."""

    contact: Contact
    changed_fields: list[str] = field(default_factory=list)
    warnings: list[ConflictingFieldWarning] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.changed_fields)


def _as_utc(value: datetime) -> datetime:
    """Treat naive timestamps as UTC so they compare with aware ones."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def _incoming_value(rule: FieldRule, record: IncomingRecord) -> Any:
    """Pick the record value a rule consumes."""
    if rule.strategy is MergeStrategy.UNION:
        return record.lead_source.value
    if rule.strategy is MergeStrategy.LATEST:
        return record.created_at
    if rule.strategy is MergeStrategy.PER_SOURCE:
        return SourcePayload(source_id=record.source_id, data=record.source_data)
    return getattr(record, rule.field)


def _paragraphs(text: str) -> list[str]:
    return [p.strip() for p in text.split("\n\n") if p.strip()]


def _contains_note(notes: str, note: str) -> bool:
    """Check if a note's paragraphs already appear consecutively in notes."""
    existing, incoming = _paragraphs(notes), _paragraphs(note)
    size = len(incoming)
    return any(
        existing[i : i + size] == incoming for i in range(len(existing) - size + 1)
    )


def _same_value(field_name: str, existing: str, incoming: str) -> bool:
    """Equality used for conflict detection."""
    if field_name == "phone":
        return normalize_phone(existing) == normalize_phone(incoming)
    return existing.strip().casefold() == incoming.strip().casefold()


def merge_contact(
    existing: Contact,
    record: IncomingRecord,
    config: ResolverConfig,
) -> MergeOutcome:
    """Merge an incoming record into an existing contact.

    Pure: the existing contact is not modified. Empty incoming values never
    replace populated ones, and a record that adds nothing produces an
    outcome with no changed fields.

    Args:
        existing: Contact judged to be the same person
        record: Incoming record
        config: Resolver tuning (placeholder names)

    Returns:
        MergeOutcome with the updated contact, changed field names and any
        conflicting-field warnings
    """
    placeholders = FuzzyMatcher(placeholder_names=config.placeholder_names)
    updates: dict[str, Any] = {}
    warnings: list[ConflictingFieldWarning] = []

    for rule in FIELD_RULES:
        current = getattr(existing, rule.field)
        incoming = _incoming_value(rule, record)
        new_value = current

        if rule.strategy is MergeStrategy.FILL_PLACEHOLDER:
            if placeholders.is_placeholder(current) and not placeholders.is_placeholder(
                incoming
            ):
                new_value = incoming

        elif rule.strategy is MergeStrategy.KEEP_ONCE_SET:
            if is_blank(current) and not is_blank(incoming):
                new_value = incoming

        elif rule.strategy is MergeStrategy.FILL_IF_EMPTY:
            if is_blank(incoming):
                pass
            elif is_blank(current):
                new_value = incoming
            elif not _same_value(rule.field, current, incoming):
                warning = ConflictingFieldWarning(
                    field=rule.field,
                    existing_value=current,
                    incoming_value=incoming,
                    source=record.lead_source,
                    contact_id=existing.id,
                )
                warnings.append(warning)
                logger.warning(
                    "conflicting field value kept",
                    contact_id=existing.id,
                    field=rule.field,
                    existing_value=current,
                    incoming_value=incoming,
                    source=record.lead_source.value,
                )

        elif rule.strategy is MergeStrategy.UNION:
            if incoming not in current:
                new_value = [*current, incoming]

        elif rule.strategy is MergeStrategy.APPEND:
            if not is_blank(incoming):
                note = incoming.strip()
                if is_blank(current):
                    new_value = note
                elif not _contains_note(current, note):
                    new_value = f"{current.rstrip()}\n\n{note}"

        elif rule.strategy is MergeStrategy.LATEST:
            if current is None or _as_utc(incoming) > _as_utc(current):
                new_value = incoming

        elif rule.strategy is MergeStrategy.PER_SOURCE:
            key = record.lead_source.value
            if current.get(key) != incoming:
                new_value = {**current, key: incoming}

        if new_value != current:
            updates[rule.field] = new_value

    lead_source = updates.get("lead_source", existing.lead_source)
    if existing.sources_count != len(lead_source):
        updates["sources_count"] = len(lead_source)

    if not updates:
        return MergeOutcome(contact=existing, warnings=warnings)

    merged = existing.model_copy(update=updates, deep=True)
    return MergeOutcome(
        contact=merged,
        changed_fields=list(updates),
        warnings=warnings,
    )


def new_contact(record: IncomingRecord, config: ResolverConfig) -> Contact:
    """Build a not-yet-persisted contact from an incoming record."""
    name = record.name
    if is_blank(name):
        name = config.placeholder_names[0] if config.placeholder_names else ""
    return Contact(
        name=name,
        email=record.email or None,
        phone=record.phone or None,
        company=record.company or None,
        title=record.title or None,
        lead_source=[record.lead_source.value],
        sources_count=1,
        notes=record.notes.strip() if not is_blank(record.notes) else None,
        last_activity_date=record.created_at,
        created_at=record.created_at,
        source_data={
            record.lead_source.value: SourcePayload(
                source_id=record.source_id,
                data=record.source_data,
            )
        },
    )
