"""Normalization helpers for contact fields.

All comparisons between incoming records and stored contacts go through
these functions so lookups and scoring agree on what "equal" means.
"""

import re

_NON_DIGIT = re.compile(r"\D+")
_NON_ALNUM = re.compile(r"[^a-z0-9]+")

# Trailing legal-entity words ignored when comparing company names
_COMPANY_SUFFIXES = {
    "inc",
    "incorporated",
    "llc",
    "ltd",
    "limited",
    "corp",
    "corporation",
    "co",
    "company",
    "gmbh",
    "plc",
}

_GMAIL_DOMAINS = {"gmail.com", "googlemail.com"}


def normalize_email(email: str | None) -> str | None:
    """Trim and lowercase an email. Blank input returns None."""
    if not email:
        return None
    normalized = email.strip().lower()
    return normalized or None


def canonical_email(email: str | None) -> str | None:
    """Reduce an email to the mailbox it delivers to.

    Drops plus-addressing tags for every domain and dots in the local
    part for Gmail:
        'John.Doe+calendly@Gmail.com' -> 'johndoe@gmail.com'
    """
    normalized = normalize_email(email)
    if not normalized or "@" not in normalized:
        return normalized
    local, domain = normalized.rsplit("@", 1)
    local = local.split("+", 1)[0]
    if domain in _GMAIL_DOMAINS:
        local = local.replace(".", "")
    return f"{local}@{domain}"


def email_domain(email: str | None) -> str | None:
    """Domain part of an email, lowercased."""
    normalized = normalize_email(email)
    if not normalized or "@" not in normalized:
        return None
    return normalized.rsplit("@", 1)[1] or None


def normalize_phone(phone: str | None) -> str | None:
    """Strip everything but digits. Returns None when nothing is left."""
    if not phone:
        return None
    digits = _NON_DIGIT.sub("", phone)
    return digits or None


def normalize_name(name: str | None) -> str | None:
    """Lowercase, collapse whitespace."""
    if not name:
        return None
    collapsed = " ".join(name.split()).lower()
    return collapsed or None


def normalize_company(company: str | None) -> str | None:
    """Company key for matching: alphanumeric tokens without legal suffixes.

    'Acme, Inc.' and 'ACME' both become 'acme'.
    """
    if not company:
        return None
    tokens = [t for t in _NON_ALNUM.split(company.lower()) if t]
    while len(tokens) > 1 and tokens[-1] in _COMPANY_SUFFIXES:
        tokens.pop()
    return " ".join(tokens) or None


def company_slug(company: str | None) -> str | None:
    """Company key with spaces removed, comparable to a domain label."""
    key = normalize_company(company)
    return key.replace(" ", "") if key else None


def domain_label(domain: str | None) -> str | None:
    """Registrable label of a domain: 'mail.acme.co.uk' -> 'acme'."""
    if not domain:
        return None
    parts = [p for p in domain.lower().split(".") if p]
    if len(parts) < 2:
        return parts[0] if parts else None
    # Two-letter country code after a short second level (co.uk, com.au)
    if len(parts) >= 3 and len(parts[-1]) == 2 and len(parts[-2]) <= 3:
        return parts[-3]
    return parts[-2]


def is_blank(value: str | None) -> bool:
    """True for None or whitespace-only strings."""
    return value is None or not str(value).strip()
