"""Run one conversion from the command line.

Options not given on the command line fall back to the CONVERSION_*
settings. Prints the run summary as JSON; exits 1 when a chunk aborted.

Run this via: python -m content_converter.run notes --delete
"""

import argparse
import asyncio
import json
import sys
from collections.abc import Sequence
from typing import Any

from pydantic import ValidationError

from content_converter.core.database import db_manager
from content_converter.core.logging import get_logger, setup_logging
from content_converter.schemas.conversion import (
    MAX_BATCH_SIZE,
    ConversionKind,
    ConversionOptions,
)
from content_converter.services.batch import run_conversion
from content_converter.services.results import BatchRunSummary

logger = get_logger("conversion.cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Convert legacy notes or attachments into content files"
    )
    parser.add_argument("kind", choices=[kind.value for kind in ConversionKind])
    parser.add_argument(
        "--delete",
        action="store_true",
        default=None,
        help="Delete each legacy record once converted",
    )
    parser.add_argument(
        "--share-private",
        action="store_true",
        default=None,
        help="Share files of private records with their parent",
    )
    parser.add_argument(
        "--convert-if-sharing-disabled",
        action="store_true",
        default=None,
        help="Convert records whose parent type does not support sharing",
    )
    parser.add_argument(
        "--route-inbound-to-case",
        action="store_true",
        default=None,
        help="Share inbound email attachments with the email's parent",
    )
    parser.add_argument(
        "--parent-id",
        action="append",
        dest="parent_ids",
        metavar="ID",
        help="Only convert records of this parent (repeatable)",
    )
    parser.add_argument(
        "--notify",
        action="append",
        dest="notify",
        metavar="EMAIL",
        help="Email the results to this address (repeatable)",
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        help=f"Records per chunk (1-{MAX_BATCH_SIZE})",
    )
    return parser


def options_from_args(args: argparse.Namespace) -> ConversionOptions:
    """Merge command line flags into settings-based options."""
    return ConversionOptions.from_settings(
        delete_source_upon_conversion=args.delete,
        share_private=args.share_private,
        convert_if_sharing_capability_disabled=args.convert_if_sharing_disabled,
        route_inbound_message_attachments_to_case=args.route_inbound_to_case,
        scope_parent_ids=frozenset(args.parent_ids) if args.parent_ids else None,
        notification_addresses=tuple(args.notify) if args.notify else None,
        batch_size=args.batch_size,
    )


def summary_to_dict(summary: BatchRunSummary) -> dict[str, Any]:
    return {
        "kind": summary.kind,
        **summary.counts(),
        "duration_ms": round(summary.duration_ms, 2),
        "failed_chunk_details": [
            {
                "chunk_index": chunk.chunk_index,
                "record_ids": chunk.record_ids,
                "error": chunk.error,
            }
            for chunk in summary.failed_chunks
        ],
        "results": [
            {
                "success": result.success,
                "source_record_id": result.source_record_id,
                "new_content_id": result.new_content_id,
                "content_document_id": result.content_document_id,
                "message": result.message,
            }
            for result in sorted(summary.results, key=lambda r: r.source_record_id)
        ],
    }


async def async_main(kind: str, options: ConversionOptions) -> BatchRunSummary:
    """Run the conversion on the application database."""
    db_manager.init_db()
    try:
        return await run_conversion(kind, options)
    finally:
        await db_manager.close()


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging()

    try:
        options = options_from_args(args)
    except ValidationError as e:
        logger.error("Invalid conversion options", extra={"errors": str(e)})
        print(str(e), file=sys.stderr)
        return 2

    summary = asyncio.run(async_main(args.kind, options))
    print(json.dumps(summary_to_dict(summary), indent=2))
    return 0 if summary.succeeded else 1


if __name__ == "__main__":
    sys.exit(main())
