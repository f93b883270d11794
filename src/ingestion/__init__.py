"""Ingestion of contact records from the source platforms.

This module provides:
- Mappers from Close leads, Calendly invitees and Typeform responses to
  IncomingRecord
- IngestionJob: bounded-concurrency batch resolution with per-record retry
"""

from src.ingestion.batch import BatchSummary, IngestionJob
from src.ingestion.mappers import (
    from_calendly_invitee,
    from_close_lead,
    from_typeform_response,
)

__all__ = [
    "BatchSummary",
    "IngestionJob",
    "from_calendly_invitee",
    "from_close_lead",
    "from_typeform_response",
]
