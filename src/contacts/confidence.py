"""Confidence scoring for contact match candidates.

Confidence is a pure function of which signals agreed:
- EXACT: normalized email matches
- HIGH: phone matches, or email matches after removing plus-addressing
  and Gmail dots
- MEDIUM: name similar AND (company matches OR email domain matches the
  contact's company)
- LOW: name similar, nothing else
- NONE: nothing agreed
"""

from src.contacts.fuzzy_matcher import FuzzyMatcher
from src.contacts.normalize import (
    canonical_email,
    company_slug,
    domain_label,
    email_domain,
    normalize_email,
    normalize_phone,
)
from src.contacts.schemas import (
    Contact,
    IncomingRecord,
    LookupPass,
    MatchCandidate,
    MatchConfidence,
    MatchSignal,
    ResolverConfig,
)

# Order signals appear in reasons
_SIGNAL_ORDER = list(MatchSignal)

_SIGNAL_LABELS = {
    MatchSignal.EMAIL: "exact email match",
    MatchSignal.EMAIL_CANONICAL: "email match ignoring plus-addressing/dots",
    MatchSignal.PHONE: "phone match",
    MatchSignal.NAME: "name similarity",
    MatchSignal.COMPANY: "company match",
    MatchSignal.EMAIL_DOMAIN: "email domain matches company",
}


def collect_signals(
    contact: Contact,
    record: IncomingRecord,
    config: ResolverConfig,
    matcher: FuzzyMatcher,
) -> tuple[frozenset[MatchSignal], float]:
    """Compare a record with a contact field by field.

    Args:
        contact: Existing contact
        record: Incoming record
        config: Resolver tuning (phone length, free-mail domains)
        matcher: Name/company comparator

    Returns:
        Tuple of (agreeing signals, name similarity 0-1)
    """
    signals: set[MatchSignal] = set()

    record_email = normalize_email(record.email)
    contact_email = normalize_email(contact.email)
    if record_email and record_email == contact_email:
        signals.add(MatchSignal.EMAIL)
    elif record_email and canonical_email(record_email) == canonical_email(
        contact_email
    ):
        signals.add(MatchSignal.EMAIL_CANONICAL)

    record_phone = normalize_phone(record.phone)
    if (
        record_phone
        and len(record_phone) >= config.min_phone_digits
        and record_phone == normalize_phone(contact.phone)
    ):
        signals.add(MatchSignal.PHONE)

    similarity = matcher.similarity(record.name, contact.name)
    if similarity >= matcher.threshold:
        signals.add(MatchSignal.NAME)

    if matcher.companies_match(record.company, contact.company):
        signals.add(MatchSignal.COMPANY)

    if _domain_matches(record_email, contact, config):
        signals.add(MatchSignal.EMAIL_DOMAIN)

    return frozenset(signals), similarity


def _domain_matches(
    record_email: str | None,
    contact: Contact,
    config: ResolverConfig,
) -> bool:
    """Check the record's work-email domain against the contact's company."""
    domain = email_domain(record_email)
    if not domain or domain in config.free_email_domains:
        return False
    if domain_label(domain) == company_slug(contact.company):
        return True
    return domain == email_domain(contact.email)


def score_signals(signals: frozenset[MatchSignal]) -> MatchConfidence:
    """Map agreeing signals to a confidence level."""
    if MatchSignal.EMAIL in signals:
        return MatchConfidence.EXACT
    if MatchSignal.PHONE in signals or MatchSignal.EMAIL_CANONICAL in signals:
        return MatchConfidence.HIGH
    if MatchSignal.NAME in signals:
        if MatchSignal.COMPANY in signals or MatchSignal.EMAIL_DOMAIN in signals:
            return MatchConfidence.MEDIUM
        return MatchConfidence.LOW
    return MatchConfidence.NONE


def describe_signals(
    signals: frozenset[MatchSignal],
    name_similarity: float = 0.0,
) -> str:
    """Human-readable reason listing the agreeing signals."""
    if not signals:
        return "no matching signals"
    parts = []
    for signal in _SIGNAL_ORDER:
        if signal not in signals:
            continue
        label = _SIGNAL_LABELS[signal]
        if signal is MatchSignal.NAME:
            label = f"{label} {name_similarity:.2f}"
        parts.append(label)
    return " + ".join(parts)


def score_candidate(
    contact: Contact,
    record: IncomingRecord,
    found_by: LookupPass,
    config: ResolverConfig,
    matcher: FuzzyMatcher,
) -> MatchCandidate:
    """Build a fully scored candidate for a contact.

    Args:
        contact: Existing contact surfaced by lookup
        record: Incoming record
        found_by: Strongest lookup pass that surfaced the contact
        config: Resolver tuning
        matcher: Name/company comparator

    Returns:
        MatchCandidate with signals, confidence and reason filled in
    """
    signals, similarity = collect_signals(contact, record, config, matcher)
    return MatchCandidate(
        contact=contact,
        found_by=found_by,
        signals=signals,
        name_similarity=similarity,
        confidence=score_signals(signals),
        reason=describe_signals(signals, similarity),
    )
