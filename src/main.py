"""Command-line entry point for contact ingestion jobs.

Usage:
    python -m src.main calendly invitees.json --threshold medium
"""

import argparse
import asyncio
import json
import logging
from pathlib import Path
from typing import Any

from src.config import settings
from src.contacts.resolver import ContactResolver
from src.contacts.schemas import (
    IncomingRecord,
    MatchConfidence,
    ResolverConfig,
    SourcePlatform,
)
from src.db.turso import TursoClient
from src.ingestion.batch import BatchSummary, IngestionJob
from src.ingestion.mappers import (
    from_calendly_invitee,
    from_close_lead,
    from_typeform_response,
)
from src.repositories.contact_repo import ContactRepository

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def load_records(platform: SourcePlatform, payload: Any) -> list[IncomingRecord]:
    """Turn a platform export into incoming records.

    Accepted shapes:
    - close: list of leads, or {"data": [...]}
    - calendly: list of invitees or {"invitee": ..., "event": ...} pairs,
      or {"collection": [...]}
    - typeform: list of responses, or {"items": [...], "fields": {id: title}}

    Args:
        platform: Platform the export came from
        payload: Parsed JSON export

    Returns:
        Records that carried enough identity to resolve
    """
    records: list[IncomingRecord] = []

    if platform is SourcePlatform.CLOSE:
        leads = payload.get("data", []) if isinstance(payload, dict) else payload
        for lead in leads:
            records.extend(from_close_lead(lead))

    elif platform is SourcePlatform.CALENDLY:
        items = payload.get("collection", []) if isinstance(payload, dict) else payload
        for item in items:
            if "invitee" in item:
                record = from_calendly_invitee(item["invitee"], item.get("event"))
            else:
                record = from_calendly_invitee(item)
            if record:
                records.append(record)

    elif platform is SourcePlatform.TYPEFORM:
        field_titles: dict[str, str] = {}
        items = payload
        if isinstance(payload, dict):
            items = payload.get("items", [])
            field_titles = payload.get("fields", {})
        for response in items:
            record = from_typeform_response(response, field_titles)
            if record:
                records.append(record)

    return records


async def run_ingestion(
    platform: SourcePlatform,
    records: list[IncomingRecord],
    threshold: MatchConfidence,
    update_if_found: bool = True,
    db_url: str | None = None,
) -> BatchSummary:
    """Resolve records against the contact store.

    Opens the database, ensures the schema exists, runs one ingestion job
    and closes the connection.
    """
    async with TursoClient(url=db_url) as db:
        contact_repo = ContactRepository(db)
        await contact_repo.initialize()

        resolver = ContactResolver(contact_repo, ResolverConfig.from_settings(settings))
        job = IngestionJob(
            resolver,
            threshold,
            update_if_found=update_if_found,
            concurrency=settings.ingest_concurrency,
            max_attempts=settings.ingest_max_attempts,
        )
        logger.info(f"Ingesting {len(records)} {platform.value} records")
        return await job.run(records)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Resolve platform contact exports into the contact store"
    )
    parser.add_argument(
        "platform",
        choices=[p.value for p in SourcePlatform],
        help="Platform the export came from",
    )
    parser.add_argument("file", type=Path, help="JSON export to ingest")
    parser.add_argument(
        "--threshold",
        choices=[c.value for c in MatchConfidence if c is not MatchConfidence.NONE],
        default=settings.ingest_match_threshold.lower(),
        help="Minimum match confidence to merge instead of create",
    )
    parser.add_argument(
        "--no-update",
        action="store_true",
        help="Link matched records without merging their fields",
    )
    parser.add_argument("--db-url", default=None, help="Override database URL")
    return parser


def main(argv: list[str] | None = None) -> int:
    """Run an ingestion job from the command line.

    Returns:
        Process exit code (1 when any record failed)
    """
    args = build_parser().parse_args(argv)
    platform = SourcePlatform(args.platform)
    payload = json.loads(args.file.read_text(encoding="utf-8"))
    records = load_records(platform, payload)

    summary = asyncio.run(
        run_ingestion(
            platform,
            records,
            MatchConfidence(args.threshold),
            update_if_found=not args.no_update,
            db_url=args.db_url,
        )
    )

    print(
        f"{platform.value}: {summary.processed} processed, "
        f"{summary.matched} matched, {summary.created} created, "
        f"{summary.failed} failed, {summary.warnings} field conflicts"
    )
    for error in summary.errors:
        print(f"  error: {error}")
    return 1 if summary.failed else 0


if __name__ == "__main__":
    raise SystemExit(main())
