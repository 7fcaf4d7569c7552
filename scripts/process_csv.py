#!/usr/bin/env python3
"""
Run the tax pipeline over a local CSV file.

Writes `<stem>_taxes.csv` (or `<stem>_taxes.zip` for the dual report) next
to the input file.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional

from salestax import settings
from salestax.api import output_filename
from salestax.etl.reports import ReportShape
from salestax.etl.run_pipeline import ProcessingMode, run_pipeline
from salestax.etl.utils import TaxPipelineError, configure_logging

logger = logging.getLogger("salestax.cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("csv_path", type=Path, help="Input CSV of charges")
    parser.add_argument(
        "--shape",
        choices=[shape.value for shape in ReportShape],
        default=ReportShape.FIXED.value,
    )
    parser.add_argument(
        "--mode",
        choices=[mode.value for mode in ProcessingMode],
        default=ProcessingMode.PARALLEL.value,
    )
    parser.add_argument("--concurrency", type=int, default=settings.LOOKUP_CONCURRENCY)
    parser.add_argument("--output", type=Path, default=None, help="Output path")
    return parser


async def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging()

    content = args.csv_path.read_bytes()
    try:
        result = await run_pipeline(
            content,
            shape=args.shape,
            mode=args.mode,
            concurrency=args.concurrency,
            metadata={"filename": args.csv_path.name},
        )
    except TaxPipelineError as e:
        logger.error(f"Processing failed: {e}")
        return 1

    output = args.output or args.csv_path.with_name(output_filename(args.csv_path.name, result.extension))
    output.write_bytes(result.payload)
    logger.info(f"Report written to {output}")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
