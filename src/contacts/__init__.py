"""Contact identity resolution for records from Close, Calendly and Typeform.

This module provides:
- ContactResolver: lookup (email -> phone -> fuzzy) and merge-or-create
- resolve_candidate: the pure decision gate over scored candidates
- Confidence scoring (EXACT/HIGH/MEDIUM/LOW/NONE) from agreeing signals
- A declarative field-rule merge policy
- Schemas for contacts, incoming records and resolution results
"""

from src.contacts.confidence import score_candidate, score_signals
from src.contacts.errors import (
    ContactResolutionError,
    DuplicateContactError,
    LookupFailure,
    PersistenceFailure,
)
from src.contacts.fuzzy_matcher import FuzzyMatcher
from src.contacts.merge_policy import FIELD_RULES, merge_contact
from src.contacts.resolver import ContactResolver, resolve_candidate
from src.contacts.schemas import (
    ConflictingFieldWarning,
    Contact,
    IncomingRecord,
    MatchConfidence,
    ResolutionResult,
    ResolverConfig,
    SourcePlatform,
)

__all__ = [
    "FIELD_RULES",
    "ConflictingFieldWarning",
    "Contact",
    "ContactResolutionError",
    "ContactResolver",
    "DuplicateContactError",
    "FuzzyMatcher",
    "IncomingRecord",
    "LookupFailure",
    "MatchConfidence",
    "PersistenceFailure",
    "ResolutionResult",
    "ResolverConfig",
    "SourcePlatform",
    "merge_contact",
    "resolve_candidate",
    "score_candidate",
    "score_signals",
]
