"""Print reconciled clinic visits (or their chart summary) as JSON."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Iterable

from services.visit_tracker.clients.document_store import MongoVisitStore
from services.visit_tracker.clients.spreadsheet import GoogleSheetsSource
from services.visit_tracker.pipelines.filtering import VisitFilter
from services.visit_tracker.pipelines.normalizer import NormalizationRules
from services.visit_tracker.pipelines.reconcile import sheet_read_policy
from services.visit_tracker.service import VisitService
from shared.config.settings import Settings, get_settings
from shared.models.visit import VisitListResponse
from shared.observability.logger import configure_logging


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description=(
            "Read visits from MongoDB and the configured Google Sheets tabs, "
            "reconcile them, and print the result as JSON."
        )
    )
    filters = parser.add_mutually_exclusive_group()
    filters.add_argument("--date", help="Only include visits on this date (YYYY-MM-DD).")
    filters.add_argument("--month", help="Only include visits in this month (YYYY-MM).")
    parser.add_argument(
        "--summary",
        action="store_true",
        help="Emit the chart summary instead of the visit list.",
    )
    parser.add_argument(
        "--no-sheets",
        dest="include_sheets",
        action="store_false",
        help="Skip the spreadsheet source even when it is configured.",
    )
    parser.add_argument("--indent", type=int, default=2, help="JSON indentation (default: 2).")
    return parser


def build_service(settings: Settings, *, include_sheets: bool = True) -> VisitService:
    store = MongoVisitStore.from_settings(settings.mongo)
    sheets = None
    if include_sheets and settings.sheets.enabled:
        sheets = GoogleSheetsSource.from_settings(settings.sheets)
    return VisitService(
        store,
        sheets,
        rules=NormalizationRules.from_settings(settings.reconciliation),
        sheet_read_policy=sheet_read_policy(settings.sheets.read_attempts),
    )


async def _run_async(args: argparse.Namespace, service: VisitService) -> int:
    try:
        visit_filter = VisitFilter.from_query(args.date, args.month)
        if args.summary:
            payload = (await service.summarize(visit_filter)).model_dump(
                mode="json", by_alias=True
            )
        else:
            result = await service.list_visits(visit_filter)
            payload = VisitListResponse(
                data=result.records, failed_sources=result.failed_sources
            ).model_dump(mode="json", by_alias=True)
    finally:
        service.close()

    print(json.dumps(payload, indent=args.indent or None, ensure_ascii=False))
    return 0


def main(argv: Iterable[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(None if argv is None else list(argv))
    settings = get_settings()
    configure_logging(service_name="visit_export", level="WARNING", sink=sys.stderr)
    try:
        service = build_service(settings, include_sheets=args.include_sheets)
        return asyncio.run(_run_async(args, service))
    except KeyboardInterrupt:  # pragma: no cover - manual cancellation guard
        return 130
    except Exception as exc:  # surface script errors without a traceback
        print(str(exc), file=sys.stderr)
        return 1


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    raise SystemExit(main())
