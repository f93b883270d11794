"""ContactResolver decides whether an incoming record is a known person.

Resolution steps:
1. Candidate lookup (email -> phone -> fuzzy name/company)
2. Confidence scoring per candidate
3. Decision gate against the caller's threshold (pure, no writes)
4. Apply: merge into the chosen contact or create a new one

A unique-email violation while writing means another job created the
same person concurrently; the whole lookup is retried exactly once.
"""

from typing import TYPE_CHECKING

import structlog

from src.contacts.confidence import score_candidate
from src.contacts.errors import DuplicateContactError, PersistenceFailure
from src.contacts.fuzzy_matcher import FuzzyMatcher
from src.contacts.merge_policy import merge_contact, new_contact
from src.contacts.normalize import normalize_phone
from src.contacts.schemas import (
    Contact,
    DecisionAction,
    IncomingRecord,
    LookupPass,
    MatchCandidate,
    MatchConfidence,
    ResolutionDecision,
    ResolutionResult,
    ResolverConfig,
)

if TYPE_CHECKING:
    from src.repositories.contact_repo import ContactRepository

logger = structlog.get_logger()


def _rank_key(candidate: MatchCandidate) -> tuple[int, int, int]:
    """Best first: confidence, then lookup strength, then oldest contact."""
    contact_id = candidate.contact.id if candidate.contact.id is not None else 0
    return (-candidate.confidence.rank, candidate.found_by.strength, contact_id)


def resolve_candidate(
    record: IncomingRecord,
    candidates: list[MatchCandidate],
    threshold: MatchConfidence,
) -> ResolutionDecision:
    """Choose between merging into a candidate and creating a new contact.

    Pure: no store access. Ties at the top confidence are broken by the
    lookup pass that found the candidate (email > phone > fuzzy), then by
    lowest contact ID. A create decision carries the best candidate's
    confidence when one fell below the threshold, otherwise NONE.

    Args:
        record: Incoming record being resolved
        candidates: Scored candidates from lookup
        threshold: Minimum confidence to accept a match (not NONE)

    Returns:
        ResolutionDecision describing the action and why
    """
    if threshold is MatchConfidence.NONE:
        msg = "Threshold must be EXACT, HIGH, MEDIUM or LOW"
        raise ValueError(msg)

    ranked = sorted(candidates, key=_rank_key)
    best = ranked[0] if ranked else None

    if best is None or not best.confidence.meets(threshold):
        if best is None or best.confidence is MatchConfidence.NONE:
            reason = "no existing contact matched; created new contact"
        else:
            reason = (
                f"best match was {best.confidence.value} ({best.reason}), "
                f"below {threshold.value} threshold; created new contact"
            )
        return ResolutionDecision(
            action=DecisionAction.CREATE,
            candidate=None,
            confidence=best.confidence if best else MatchConfidence.NONE,
            reason=reason,
        )

    tied = [
        c.contact.id
        for c in ranked[1:]
        if c.confidence is best.confidence and c.contact.id is not None
    ]
    if tied:
        logger.info(
            "ambiguous match resolved",
            source=record.lead_source.value,
            source_id=record.source_id,
            chosen_contact_id=best.contact.id,
            tied_contact_ids=tied,
            confidence=best.confidence.value,
        )

    return ResolutionDecision(
        action=DecisionAction.MATCH,
        candidate=best,
        confidence=best.confidence,
        reason=f"{best.confidence.value} match: {best.reason}",
        tied_contact_ids=tied,
    )


class ContactResolver:
    """Resolves incoming platform records against the contact store.

    The caller supplies the minimum confidence on every call; MEDIUM is the
    recommended general-purpose threshold.
    """

    def __init__(
        self,
        contact_repo: "ContactRepository",
        config: ResolverConfig,
        fuzzy_matcher: FuzzyMatcher | None = None,
    ):
        """Initialize resolver.

        Args:
            contact_repo: Contact store
            config: Resolver tuning
            fuzzy_matcher: Name comparator (built from config if omitted)
        """
        self._contacts = contact_repo
        self._config = config
        self._fuzzy = fuzzy_matcher or FuzzyMatcher(
            threshold=config.name_similarity_threshold,
            placeholder_names=config.placeholder_names,
        )

    async def find_candidates(self, record: IncomingRecord) -> list[MatchCandidate]:
        """Find and score existing contacts that could be this person.

        The email pass always runs and the phone pass runs for phones with
        enough digits. The fuzzy name/company pass runs only when both
        found nothing. A contact found by several passes
        appears once, tagged with the strongest pass.

        Args:
            record: Incoming record

        Returns:
            Candidates ordered by lookup pass strength, then contact ID

        Raises:
            LookupFailure: Store query failed
        """
        found: dict[int, tuple[Contact, LookupPass]] = {}

        def add(contacts: list[Contact], lookup_pass: LookupPass) -> None:
            for contact in contacts:
                if contact.id is not None and contact.id not in found:
                    found[contact.id] = (contact, lookup_pass)

        exact = await self._contacts.get_by_email(record.email)
        if exact:
            add([exact], LookupPass.EMAIL)
        add(
            await self._contacts.find_by_canonical_email(record.email),
            LookupPass.EMAIL,
        )

        record_phone = normalize_phone(record.phone)
        if record_phone and len(record_phone) >= self._config.min_phone_digits:
            add(await self._contacts.find_by_phone(record_phone), LookupPass.PHONE)

        if not found:
            pool = await self._contacts.find_fuzzy_pool(
                record.name, record.company, self._config.fuzzy_pool_limit
            )
            matches = self._fuzzy.find_matches(record.name, pool)
            add([contact for contact, _score in matches], LookupPass.FUZZY)

        candidates = [
            score_candidate(contact, record, lookup_pass, self._config, self._fuzzy)
            for contact, lookup_pass in found.values()
        ]
        candidates.sort(
            key=lambda c: (c.found_by.strength, c.contact.id or 0),
        )
        return candidates

    async def apply_decision(
        self,
        decision: ResolutionDecision,
        record: IncomingRecord,
        update_if_found: bool = True,
    ) -> ResolutionResult:
        """Write the outcome of a decision.

        Args:
            decision: Output of resolve_candidate
            record: Incoming record the decision was made for
            update_if_found: Merge into a matched contact (False returns it
                unchanged)

        Returns:
            ResolutionResult for the caller's audit log

        Raises:
            DuplicateContactError: Unique email collision on write
            PersistenceFailure: Other write failure
        """
        if decision.action is DecisionAction.CREATE:
            contact = await self._contacts.create(new_contact(record, self._config))
            return ResolutionResult(
                contact=contact,
                created=True,
                confidence=decision.confidence,
                reason=decision.reason,
            )

        candidate = decision.candidate
        if candidate is None:
            msg = "Match decision has no candidate"
            raise ValueError(msg)

        if not update_if_found:
            return ResolutionResult(
                contact=candidate.contact,
                created=False,
                confidence=decision.confidence,
                reason=f"{decision.reason}; update skipped",
            )

        outcome = merge_contact(candidate.contact, record, self._config)
        contact = outcome.contact
        if outcome.changed:
            contact = await self._contacts.update(contact)

        return ResolutionResult(
            contact=contact,
            created=False,
            confidence=decision.confidence,
            reason=decision.reason,
            warnings=outcome.warnings,
            changed_fields=outcome.changed_fields,
        )

    async def resolve(
        self,
        record: IncomingRecord,
        threshold: MatchConfidence,
        update_if_found: bool = True,
    ) -> ResolutionResult:
        """Resolve an incoming record to a contact, merging or creating.

        Args:
            record: Incoming record from a source platform
            threshold: Minimum confidence to merge instead of create
            update_if_found: Merge the record into a matched contact

        Returns:
            ResolutionResult with the contact, whether it was created, the
            confidence and the reason

        Raises:
            LookupFailure: Store query failed
            PersistenceFailure: Write failed (also after the race retry)
        """
        try:
            return await self._resolve_once(record, threshold, update_if_found)
        except DuplicateContactError as e:
            logger.info(
                "unique email collision, retrying lookup",
                email=e.email,
                source=record.lead_source.value,
                source_id=record.source_id,
            )

        try:
            return await self._resolve_once(record, threshold, update_if_found)
        except DuplicateContactError as e:
            msg = f"Contact write for {e.email!r} collided twice"
            raise PersistenceFailure(msg) from e

    async def _resolve_once(
        self,
        record: IncomingRecord,
        threshold: MatchConfidence,
        update_if_found: bool,
    ) -> ResolutionResult:
        candidates = await self.find_candidates(record)
        decision = resolve_candidate(record, candidates, threshold)
        result = await self.apply_decision(decision, record, update_if_found)
        logger.info(
            "contact resolved",
            contact_id=result.contact.id,
            created=result.created,
            confidence=result.confidence.value,
            reason=result.reason,
            source=record.lead_source.value,
            source_id=record.source_id,
        )
        return result
