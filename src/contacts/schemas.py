"""Contact identity resolution schemas.

Defines the canonical Contact, the per-platform IncomingRecord, match
candidates, and the decision/result models returned by the resolver.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from src.config import Settings


class SourcePlatform(str, Enum):
    """External platform a contact record was observed on."""

    CLOSE = "close"
    CALENDLY = "calendly"
    TYPEFORM = "typeform"


class MatchConfidence(str, Enum):
    """Discrete confidence that a candidate is the same person.

    Totally ordered: EXACT > HIGH > MEDIUM > LOW > NONE.
    """

    EXACT = "exact"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    NONE = "none"

    @property
    def rank(self) -> int:
        """Numeric position in the total order (NONE = 0)."""
        return _CONFIDENCE_RANK[self]

    def meets(self, threshold: "MatchConfidence") -> bool:
        """Check if this level is at or above a threshold."""
        return self.rank >= threshold.rank


_CONFIDENCE_RANK = {
    MatchConfidence.EXACT: 4,
    MatchConfidence.HIGH: 3,
    MatchConfidence.MEDIUM: 2,
    MatchConfidence.LOW: 1,
    MatchConfidence.NONE: 0,
}


class MatchSignal(str, Enum):
    """A single comparison that agreed between a record and a contact."""

    EMAIL = "email"
    EMAIL_CANONICAL = "email_canonical"
    PHONE = "phone"
    NAME = "name"
    COMPANY = "company"
    EMAIL_DOMAIN = "email_domain"


class LookupPass(str, Enum):
    """Lookup pass that surfaced a candidate, strongest first."""

    EMAIL = "email"
    PHONE = "phone"
    FUZZY = "fuzzy"

    @property
    def strength(self) -> int:
        """Sort key: lower is stronger."""
        return list(LookupPass).index(self)


class DecisionAction(str, Enum):
    """What the decision gate chose to do with an incoming record."""

    MATCH = "match"
    CREATE = "create"


class SourcePayload(BaseModel):
    """Raw payload kept for one source platform."""

    source_id: str | None = Field(default=None, description="External ID")
    data: dict[str, Any] = Field(default_factory=dict, description="Opaque payload")


class Contact(BaseModel):
    """Canonical person record.

    At most one Contact exists per normalized email address. Contacts
    imported without an email are allowed until a later record fills it.
    """

    model_config = ConfigDict(validate_assignment=True)

    id: int | None = Field(default=None, description="Store-assigned ID")
    name: str = Field(default="", description="Display name")
    email: str | None = Field(default=None, description="Primary email")
    phone: str | None = Field(default=None)
    company: str | None = Field(default=None)
    title: str | None = Field(default=None)
    lead_source: list[str] = Field(
        default_factory=list,
        description="Platforms this contact has been seen on, in arrival order",
    )
    sources_count: int = Field(default=0, ge=0)
    notes: str | None = Field(default=None)
    last_activity_date: datetime | None = Field(default=None)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    source_data: dict[str, SourcePayload] = Field(
        default_factory=dict,
        description="Raw payload per source platform",
    )

    @property
    def lead_source_text(self) -> str:
        """Comma-joined lead sources as stored."""
        return ",".join(self.lead_source)


class IncomingRecord(BaseModel):
    """A contact as seen by one source platform, awaiting resolution.

    Never persisted directly: it is either merged into a Contact or
    used to build a new one.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(default="", description="Name as given by the source")
    email: str | None = Field(default=None)
    phone: str | None = Field(default=None)
    company: str | None = Field(default=None)
    title: str | None = Field(default=None)
    notes: str | None = Field(default=None)
    lead_source: SourcePlatform = Field(description="Origin platform")
    source_id: str | None = Field(default=None, description="Source-specific ID")
    source_data: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="Activity timestamp this record evidences",
    )


class MatchCandidate(BaseModel):
    """An existing contact paired with an incoming record."""

    contact: Contact
    found_by: LookupPass = Field(description="Strongest pass that found it")
    signals: frozenset[MatchSignal] = Field(default_factory=frozenset)
    name_similarity: float = Field(default=0.0, ge=0.0, le=1.0)
    confidence: MatchConfidence = Field(default=MatchConfidence.NONE)
    reason: str = Field(default="")


class ConflictingFieldWarning(BaseModel):
    """Two different non-empty values for a fill-only field.

    The existing value is always kept.
    """

    field: str
    existing_value: str
    incoming_value: str
    source: SourcePlatform
    contact_id: int | None = None


class ResolverConfig(BaseModel):
    """Explicit tuning passed into the resolver."""

    name_similarity_threshold: float = Field(default=0.8, ge=0.0, le=1.0)
    min_phone_digits: int = Field(default=6, ge=1)
    fuzzy_pool_limit: int = Field(default=500, ge=1)
    placeholder_names: tuple[str, ...] = ("Unknown Contact", "Unknown", "N/A")
    free_email_domains: frozenset[str] = frozenset(
        {
            "gmail.com",
            "googlemail.com",
            "yahoo.com",
            "hotmail.com",
            "outlook.com",
            "icloud.com",
            "aol.com",
            "proton.me",
            "protonmail.com",
        }
    )

    @classmethod
    def from_settings(cls, settings: Settings) -> "ResolverConfig":
        """Build resolver tuning from application settings."""
        return cls(
            name_similarity_threshold=settings.name_similarity_threshold,
            min_phone_digits=settings.min_phone_digits,
            fuzzy_pool_limit=settings.fuzzy_pool_limit,
            placeholder_names=tuple(settings.placeholder_names),
        )


class ResolutionDecision(BaseModel):
    """Output of the decision gate, before anything is written."""

    action: DecisionAction
    candidate: MatchCandidate | None = None
    confidence: MatchConfidence = MatchConfidence.NONE
    reason: str
    tied_contact_ids: list[int] = Field(
        default_factory=list,
        description="Other contacts that tied for the top confidence",
    )


class ResolutionResult(BaseModel):
    """Result of a resolution call, suitable for audit logging."""

    contact: Contact
    created: bool
    confidence: MatchConfidence
    reason: str = Field(description="Which signals drove the decision")
    warnings: list[ConflictingFieldWarning] = Field(default_factory=list)
    changed_fields: list[str] = Field(default_factory=list)
