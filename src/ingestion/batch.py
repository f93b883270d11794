"""Batch ingestion of platform records through the contact resolver.

One IngestionJob runs per source platform. Records are resolved
concurrently (bounded by a semaphore); transient store failures are
retried per record with tenacity, and records that still fail are
counted and skipped so the rest of the batch completes.
"""

import asyncio
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

import structlog
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from src.contacts.errors import ContactResolutionError, LookupFailure, PersistenceFailure
from src.contacts.resolver import ContactResolver
from src.contacts.schemas import IncomingRecord, MatchConfidence, ResolutionResult

logger = structlog.get_logger()

# Store failures worth retrying at the record level
RETRIABLE_EXCEPTIONS = (LookupFailure, PersistenceFailure)


@dataclass
class BatchSummary:
    """Counts and per-record outcomes of one ingestion run."""

    processed: int = 0
    matched: int = 0
    created: int = 0
    failed: int = 0
    warnings: int = 0
    errors: list[str] = field(default_factory=list)
    results: list[ResolutionResult] = field(default_factory=list)


class IngestionJob:
    """Resolves a batch of records from one platform."""

    def __init__(
        self,
        resolver: ContactResolver,
        threshold: MatchConfidence,
        update_if_found: bool = True,
        concurrency: int = 4,
        max_attempts: int = 3,
        wait_min: float = 1.0,
        wait_max: float = 30.0,
    ):
        """Initialize job.

        Args:
            resolver: Contact resolver
            threshold: Minimum confidence passed on every resolve call
            update_if_found: Merge records into matched contacts
            concurrency: Maximum records resolved at once
            max_attempts: Attempts per record before it is skipped
            wait_min: Minimum backoff between attempts (seconds)
            wait_max: Maximum backoff between attempts (seconds)
        """
        self._resolver = resolver
        self._threshold = threshold
        self._update_if_found = update_if_found
        self._semaphore = asyncio.Semaphore(concurrency)
        self._max_attempts = max_attempts
        self._wait_min = wait_min
        self._wait_max = wait_max

    async def run(self, records: Iterable[IncomingRecord]) -> BatchSummary:
        """Resolve every record and summarize.

        Args:
            records: Incoming records from one platform

        Returns:
            BatchSummary with counts, errors and successful results in
            input order
        """
        records = list(records)
        summary = BatchSummary(processed=len(records))

        outcomes = await asyncio.gather(*(self._handle(r) for r in records))

        for record, outcome in zip(records, outcomes, strict=True):
            if isinstance(outcome, ContactResolutionError):
                summary.failed += 1
                summary.errors.append(
                    f"{record.lead_source.value} {record.source_id or record.email}: "
                    f"{outcome}"
                )
                continue
            summary.results.append(outcome)
            summary.warnings += len(outcome.warnings)
            if outcome.created:
                summary.created += 1
            else:
                summary.matched += 1

        logger.info(
            "ingestion batch finished",
            processed=summary.processed,
            matched=summary.matched,
            created=summary.created,
            failed=summary.failed,
            warnings=summary.warnings,
        )
        return summary

    async def _handle(
        self, record: IncomingRecord
    ) -> ResolutionResult | ContactResolutionError:
        async with self._semaphore:
            try:
                return await self._resolve_with_retry(record)
            except ContactResolutionError as e:
                logger.error(
                    "record skipped",
                    source=record.lead_source.value,
                    source_id=record.source_id,
                    error=str(e),
                )
                return e

    async def _resolve_with_retry(self, record: IncomingRecord) -> ResolutionResult:
        @retry(
            stop=stop_after_attempt(self._max_attempts),
            wait=wait_exponential(multiplier=1, min=self._wait_min, max=self._wait_max),
            retry=retry_if_exception_type(RETRIABLE_EXCEPTIONS),
            before_sleep=before_sleep_log(logger, log_level=logging.INFO),
            reraise=True,
        )
        async def inner() -> ResolutionResult:
            return await self._resolver.resolve(
                record,
                self._threshold,
                update_if_found=self._update_if_found,
            )

        return await inner()
