"""Map raw platform payloads to IncomingRecord.

Each source platform describes people differently:
- Close: a lead (company) holding contacts with email/phone lists
- Calendly: an invitee with free-form booking questions
- Typeform: a response whose answers are typed fields plus hidden fields
"""

import re
from datetime import UTC, datetime
from typing import Any

from src.contacts.schemas import IncomingRecord, SourcePlatform

_EMAIL_PATTERN = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")

NAME_KEYWORDS = ("full name", "your name", "first name", "name")
COMPANY_KEYWORDS = ("company", "organization", "organisation", "business", "employer")
PHONE_KEYWORDS = ("phone", "mobile", "cell", "whatsapp")
TITLE_KEYWORDS = ("job title", "title", "role", "position")


def _parse_timestamp(value: str | None) -> datetime:
    """Parse an ISO-8601 timestamp; missing or invalid values mean now."""
    if value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            parsed = None
        if parsed is not None:
            return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
    return datetime.now(UTC)


def _first(items: list[dict] | None, key: str) -> str | None:
    """First non-empty value of key in a list of dicts."""
    for item in items or []:
        value = item.get(key)
        if value:
            return value
    return None


def _matches_keyword(title: str | None, keywords: tuple[str, ...]) -> bool:
    if not title:
        return False
    lowered = title.lower()
    return any(keyword in lowered for keyword in keywords)


def from_close_lead(lead: dict[str, Any]) -> list[IncomingRecord]:
    """Build one record per contact on a Close lead.

    The lead's display name is the company. Contacts with neither an
    email nor a phone are skipped.

    Args:
        lead: Lead object from the Close API

    Returns:
        Records in the lead's contact order
    """
    company = lead.get("display_name") or lead.get("name")
    records = []
    for contact in lead.get("contacts") or []:
        email = _first(contact.get("emails"), "email")
        phone = _first(contact.get("phones"), "phone")
        if not email and not phone:
            continue
        records.append(
            IncomingRecord(
                name=contact.get("display_name") or contact.get("name") or "",
                email=email,
                phone=phone,
                company=company,
                title=contact.get("title") or None,
                lead_source=SourcePlatform.CLOSE,
                source_id=contact.get("id"),
                source_data={"lead_id": lead.get("id"), "contact": contact},
                created_at=_parse_timestamp(
                    contact.get("date_updated")
                    or lead.get("date_updated")
                    or contact.get("date_created")
                ),
            )
        )
    return records


def from_calendly_invitee(
    invitee: dict[str, Any],
    event: dict[str, Any] | None = None,
) -> IncomingRecord | None:
    """Build a record from a Calendly invitee.

    Phone and company come from booking questions; the name falls back to
    the email's local part.

    Args:
        invitee: Invitee object from the Calendly API
        event: Scheduled event the invitee booked, if loaded

    Returns:
        IncomingRecord, or None when the invitee has no email
    """
    email = invitee.get("email")
    if not email:
        return None

    phone = invitee.get("text_reminder_number")
    company = None
    title = None
    for qa in invitee.get("questions_and_answers") or []:
        question, answer = qa.get("question"), qa.get("answer")
        if not answer:
            continue
        if not phone and _matches_keyword(question, PHONE_KEYWORDS):
            phone = answer
        elif not company and _matches_keyword(question, COMPANY_KEYWORDS):
            company = answer
        elif not title and _matches_keyword(question, TITLE_KEYWORDS):
            title = answer

    notes = None
    if event and event.get("name"):
        notes = f"Booked {event['name']} via Calendly"

    return IncomingRecord(
        name=invitee.get("name") or email.split("@")[0],
        email=email,
        phone=phone,
        company=company,
        title=title,
        notes=notes,
        lead_source=SourcePlatform.CALENDLY,
        source_id=invitee.get("uri"),
        source_data={
            "invitee": invitee,
            "event_uri": (event or {}).get("uri") or invitee.get("event"),
        },
        created_at=_parse_timestamp(invitee.get("created_at")),
    )


def _answer_value(answer: dict[str, Any]) -> str | None:
    """Value of a Typeform answer regardless of its type."""
    answer_type = answer.get("type")
    value = answer.get(answer_type) if answer_type else None
    if isinstance(value, dict):
        # choice answers
        value = value.get("label")
    return str(value) if value not in (None, "") else None


def from_typeform_response(
    response: dict[str, Any],
    field_titles: dict[str, str] | None = None,
) -> IncomingRecord | None:
    """Build a record from a Typeform response.

    Email comes from an email answer, then any text answer containing an
    email, then hidden fields. Name, company, phone and title come from
    answers whose field title matches a keyword, then hidden fields.

    Args:
        response: Response object from the Typeform Responses API
        field_titles: Field ID -> question title from the form definition

    Returns:
        IncomingRecord, or None when no email can be found
    """
    field_titles = field_titles or {}
    answers = response.get("answers") or []
    hidden = response.get("hidden") or {}

    email = None
    phone = None
    by_keyword: dict[str, str] = {}
    for answer in answers:
        answer_type = answer.get("type")
        value = _answer_value(answer)
        if not value:
            continue
        if answer_type == "email" and not email:
            email = value
            continue
        if answer_type == "phone_number" and not phone:
            phone = value
            continue

        field = answer.get("field") or {}
        title = field.get("title") or field_titles.get(field.get("id", ""))
        title = title or field.get("ref")
        for key, keywords in (
            ("company", COMPANY_KEYWORDS),
            ("phone", PHONE_KEYWORDS),
            ("title", TITLE_KEYWORDS),
            ("name", NAME_KEYWORDS),
        ):
            if key not in by_keyword and _matches_keyword(title, keywords):
                by_keyword[key] = value
                break

        if not email and answer_type == "text":
            found = _EMAIL_PATTERN.search(value)
            if found:
                email = found.group(0)

    email = email or hidden.get("email")
    if not email:
        return None

    return IncomingRecord(
        name=by_keyword.get("name") or hidden.get("name") or "",
        email=email,
        phone=phone or by_keyword.get("phone") or hidden.get("phone"),
        company=by_keyword.get("company") or hidden.get("company"),
        title=by_keyword.get("title") or hidden.get("title"),
        lead_source=SourcePlatform.TYPEFORM,
        source_id=response.get("response_id") or response.get("token"),
        source_data={
            "answers": answers,
            "hidden": hidden,
            "utm_source": hidden.get("utm_source"),
            "utm_medium": hidden.get("utm_medium"),
            "utm_campaign": hidden.get("utm_campaign"),
        },
        created_at=_parse_timestamp(
            response.get("submitted_at") or response.get("landed_at")
        ),
    )
