"""Errors raised while resolving contacts."""


class ContactResolutionError(Exception):
    """Base class for contact resolution failures."""


class LookupFailure(ContactResolutionError):
    """The contact store could not be queried."""


class PersistenceFailure(ContactResolutionError):
    """A write to the contact store failed after a decision was made."""


class DuplicateContactError(PersistenceFailure):
    """Insert or update hit the unique normalized-email constraint.

    Usually means another job created the same contact concurrently.
    """

    def __init__(self, email: str | None, message: str = ""):
        self.email = email
        super().__init__(message or f"Contact with email {email!r} already exists")
