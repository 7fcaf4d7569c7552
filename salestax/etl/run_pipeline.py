"""
Pipeline orchestrator.

Drives parse -> rate lookup -> tax calculation for every row of an uploaded
spreadsheet and hands the results to the report writer.

Two processing disciplines are supported:

* sequential: rows are processed one at a time in input order and the first
  error aborts the run
* parallel: lookups fan out under a semaphore, per-row failures are kept
  alongside the row, and results are restored to input order by row index
"""

import asyncio
import logging
from datetime import date
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from salestax import settings
from salestax.etl.calculator import amounts
from salestax.etl.parser import CSVParser, ParsedRow
from salestax.etl.rate_lookup import KEY_BY_NAME, KEY_BY_TYPE, RateLookupClient
from salestax.etl.reports import ReportShape, ZIP_MEDIA_TYPE, write_report
from salestax.etl.utils import PipelineContext, TaxPipelineError
from salestax.models import ChargeRecord, EnrichedRecord, RowFailure, RowOutcome


class ProcessingMode(str, Enum):
    """Supported processing disciplines."""
    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"


class PipelineResult:
    """Output of a pipeline run."""

    def __init__(self, payload: bytes, media_type: str, stats: Dict[str, Any]):
        self.payload = payload
        self.media_type = media_type
        self.stats = stats

    @property
    def extension(self) -> str:
        return "zip" if self.media_type == ZIP_MEDIA_TYPE else "csv"


def client_for_shape(
    shape: ReportShape,
    lookup_client: Optional[RateLookupClient] = None
) -> RateLookupClient:
    """Get a lookup client keyed the way the report shape expects.

    The fixed report keys rates by jurisdiction type and requires a state
    rate; the other shapes key rates by jurisdiction name.
    """
    if shape == ReportShape.FIXED:
        key_by, require_state = KEY_BY_TYPE, True
    else:
        key_by, require_state = KEY_BY_NAME, False

    if lookup_client is None:
        return RateLookupClient(key_by=key_by, require_state=require_state)
    return lookup_client.configured(key_by=key_by, require_state=require_state)


async def enrich_record(record: ChargeRecord, lookup_client: RateLookupClient) -> EnrichedRecord:
    """Look up the rates for a record and compute its taxes.

    Raises:
        RateLookupError: If the lookup fails
    """
    rates = await lookup_client.lookup(record.address, record.quarter, record.year)
    return EnrichedRecord(record=record, taxes=amounts(record.charge, rates))


async def process_sequential(
    records: Sequence[ChargeRecord],
    lookup_client: RateLookupClient,
    context: PipelineContext,
    logger: logging.Logger
) -> List[EnrichedRecord]:
    """Process records one at a time, aborting on the first error."""
    enriched = []
    for record in records:
        try:
            enriched.append(await enrich_record(record, lookup_client))
        except TaxPipelineError as e:
            context.error_count += 1
            logger.error(f"Row {record.row_index + 1} ({record.client}) failed: {e}")
            raise
        context.processed_count += 1
    return enriched


async def process_parallel(
    rows: Sequence[ParsedRow],
    lookup_client: RateLookupClient,
    context: PipelineContext,
    logger: logging.Logger,
    concurrency: int
) -> List[RowOutcome]:
    """Process rows concurrently, keeping per-row failures inline.

    At most `concurrency` lookups are in flight at once. Results are tagged
    with their row index and sorted back into input order.
    """
    semaphore = asyncio.Semaphore(concurrency)

    async def process_one(row: ParsedRow) -> Tuple[int, RowOutcome]:
        if isinstance(row, RowFailure):
            return row.row_index, row
        async with semaphore:
            try:
                return row.row_index, await enrich_record(row, lookup_client)
            except TaxPipelineError as e:
                logger.error(f"Row {row.row_index + 1} ({row.client}) failed: {e}")
                return row.row_index, RowFailure(
                    row_index=row.row_index,
                    raw_fields=row.raw_fields,
                    error=str(e),
                )

    tasks = [asyncio.create_task(process_one(row)) for row in rows]
    collected: List[Tuple[int, RowOutcome]] = []
    try:
        for next_done in asyncio.as_completed(tasks):
            row_index, outcome = await next_done
            if isinstance(outcome, RowFailure):
                context.error_count += 1
            else:
                context.processed_count += 1
            collected.append((row_index, outcome))
    finally:
        for task in tasks:
            if not task.done():
                task.cancel()

    collected.sort(key=lambda item: item[0])
    return [outcome for _, outcome in collected]


async def run_pipeline(
    content: Union[bytes, str],
    shape: Union[ReportShape, str] = ReportShape.FIXED,
    mode: Union[ProcessingMode, str] = ProcessingMode.PARALLEL,
    lookup_client: Optional[RateLookupClient] = None,
    concurrency: Optional[int] = None,
    logger: Optional[logging.Logger] = None,
    today: Optional[date] = None,
    metadata: Optional[Dict[str, Any]] = None
) -> PipelineResult:
    """Run the tax pipeline over an uploaded spreadsheet.

    Args:
        content: Raw CSV content
        shape: Report shape to produce
        mode: Processing discipline
        lookup_client: Rate lookup client. Defaults to one built from settings.
        concurrency: Maximum in-flight lookups in parallel mode.
            Defaults to settings.LOOKUP_CONCURRENCY.
        logger: Logger for pipeline progress. Defaults to "salestax.pipeline".
        today: Date used for the default rate period
        metadata: Additional metadata for the run statistics

    Returns:
        Pipeline result carrying the report payload

    Raises:
        TaxPipelineError: If the input is invalid, or a row fails in
            sequential mode
    """
    shape = ReportShape(shape)
    mode = ProcessingMode(mode)
    if concurrency is None:
        concurrency = settings.LOOKUP_CONCURRENCY
    if concurrency < 1:
        raise ValueError("concurrency must be at least 1")
    logger = logger or logging.getLogger("salestax.pipeline")

    context = PipelineContext(
        mode=mode.value,
        shape=shape.value,
        concurrency=concurrency,
        metadata=dict(metadata or {})
    )
    logger.info(f"Starting tax pipeline ({mode.value}, {shape.value} report)")

    client = client_for_shape(shape, lookup_client)
    parser = CSVParser(content, today=today)
    context.row_count = len(parser.rows)

    outcomes: Sequence[RowOutcome]
    if mode == ProcessingMode.SEQUENTIAL:
        records = list(parser.records())
        outcomes = await process_sequential(records, client, context, logger)
    else:
        outcomes = await process_parallel(list(parser.outcomes()), client, context, logger, concurrency)

    payload, media_type = write_report(shape, parser.header, outcomes)

    context.metadata["rate_warnings"] = len(client.warnings)
    stats = context.get_stats()
    logger.info(
        f"Completed tax pipeline: {context.processed_count} of {context.row_count} rows processed, "
        f"{context.error_count} errors in {stats['elapsed_time']:.2f}s"
    )
    return PipelineResult(payload, media_type, stats)
