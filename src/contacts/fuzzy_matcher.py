"""Fuzzy name matching using RapidFuzz.

Name similarity used throughout contact resolution:
- identical names or the same tokens reordered score 1.0
- one name's tokens contained in the other's ("Jane" / "Jane Doe") score 0.9
- otherwise RapidFuzz token_sort_ratio, normalized to 0-1, which is
  order independent (Jane Doe = Doe, Jane)
"""

from rapidfuzz import fuzz, utils

from src.contacts.normalize import normalize_company
from src.contacts.schemas import Contact

TOKEN_SUBSET_SCORE = 0.9


class FuzzyMatcher:
    """Fuzzy name and company comparison for contact candidates.

    Placeholder names such as "Unknown Contact" never match anything.
    """

    def __init__(
        self,
        threshold: float = 0.8,
        placeholder_names: tuple[str, ...] = (),
    ):
        """Initialize matcher.

        Args:
            threshold: Minimum similarity (0-1) for names to count as a match
            placeholder_names: Names that carry no identity information
        """
        self._threshold = threshold
        self._placeholders = {utils.default_process(p) for p in placeholder_names}

    @property
    def threshold(self) -> float:
        return self._threshold

    def is_placeholder(self, name: str | None) -> bool:
        """Check if a name is empty or a known placeholder."""
        if not name:
            return True
        processed = utils.default_process(name)
        return not processed or processed in self._placeholders

    def similarity(self, first: str | None, second: str | None) -> float:
        """Similarity of two names on a 0-1 scale.

        Returns 0.0 when either side is empty or a placeholder.
        """
        if self.is_placeholder(first) or self.is_placeholder(second):
            return 0.0

        a = " ".join(utils.default_process(first).split())
        b = " ".join(utils.default_process(second).split())
        if a == b:
            return 1.0

        tokens_a, tokens_b = set(a.split()), set(b.split())
        if tokens_a == tokens_b:
            return 1.0
        if tokens_a <= tokens_b or tokens_b <= tokens_a:
            return TOKEN_SUBSET_SCORE

        return fuzz.token_sort_ratio(a, b) / 100

    def names_match(self, first: str | None, second: str | None) -> bool:
        """Check if two names are similar enough to be the same person."""
        return self.similarity(first, second) >= self._threshold

    def companies_match(self, first: str | None, second: str | None) -> bool:
        """Company names match ignoring case, punctuation and legal suffixes."""
        key_a = normalize_company(first)
        return key_a is not None and key_a == normalize_company(second)

    def find_matches(
        self,
        name: str,
        contacts: list[Contact],
    ) -> list[tuple[Contact, float]]:
        """Find contacts whose name matches above threshold.

        Args:
            name: Name to search for
            contacts: Contacts to compare against

        Returns:
            List of (contact, score) sorted by score descending, then
            contact ID ascending. Empty when nothing clears the threshold.
        """
        if self.is_placeholder(name) or not contacts:
            return []

        matches: list[tuple[Contact, float]] = []
        for contact in contacts:
            score = self.similarity(name, contact.name)
            if score >= self._threshold:
                matches.append((contact, score))

        matches.sort(key=lambda m: (-m[1], m[0].id if m[0].id is not None else 0))
        return matches
