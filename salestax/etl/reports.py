"""
Report writer.

This module serializes enriched records into the output shapes:

* fixed: one CSV with city, county and state tax columns
* dynamic: one CSV with a column per jurisdiction seen in the batch
* dual: a ZIP archive with the dynamic CSV and a per-jurisdiction totals CSV

Rows that failed in a parallel run are echoed with blank tax columns and
their message in a trailing "error" column.
"""

import csv
import io
import zipfile
from enum import Enum
from typing import Dict, List, Sequence, Tuple

from salestax.etl.calculator import totals
from salestax.etl.rate_lookup import CITY, COUNTY, STATE
from salestax.models import EnrichedRecord, RowFailure, RowOutcome

FIXED_TAX_COLUMNS = (("city tax", CITY), ("county tax", COUNTY), ("state tax", STATE))
ERROR_COLUMN = "error"
TOTALS_HEADER = ("Jurisdiction", "total")

CHARGE_REPORT_NAME = "due_by_charge.csv"
JURISDICTION_REPORT_NAME = "due_by_jurisdiction.csv"

# Fixed entry timestamp keeps archives byte-identical across runs
ARCHIVE_TIMESTAMP = (1980, 1, 1, 0, 0, 0)

CSV_MEDIA_TYPE = "text/csv"
ZIP_MEDIA_TYPE = "application/zip"


class ReportShape(str, Enum):
    """Supported report shapes."""
    FIXED = "fixed"
    DYNAMIC = "dynamic"
    DUAL = "dual"


def format_money(amount: float) -> str:
    """Render a monetary amount with two decimals."""
    return f"{amount:.2f}"


def jurisdiction_columns(outcomes: Sequence[RowOutcome]) -> List[str]:
    """Return the sorted union of jurisdictions across enriched records."""
    names = set()
    for outcome in outcomes:
        if isinstance(outcome, EnrichedRecord):
            names.update(outcome.taxes)
    return sorted(names)


def _input_fields(outcome: RowOutcome) -> List[str]:
    fields = list(outcome.raw_fields)
    if isinstance(outcome, EnrichedRecord):
        charge_index = 2 if outcome.record.date is not None else 1
        fields[charge_index] = format_money(outcome.record.charge)
    return fields


def _to_csv(rows: List[Sequence[str]]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerows(rows)
    return buffer.getvalue()


def _has_failures(outcomes: Sequence[RowOutcome]) -> bool:
    return any(isinstance(outcome, RowFailure) for outcome in outcomes)


def _table(header: Sequence[str], outcomes: Sequence[RowOutcome], columns: Sequence[Tuple[str, str]]) -> str:
    with_errors = _has_failures(outcomes)

    out_header = list(header) + [title for title, _ in columns]
    if with_errors:
        out_header.append(ERROR_COLUMN)

    rows: List[Sequence[str]] = [out_header]
    for outcome in sorted(outcomes, key=lambda o: o.row_index):
        row = _input_fields(outcome)
        if isinstance(outcome, EnrichedRecord):
            row.extend(format_money(outcome.taxes.get(key, 0.0)) for _, key in columns)
            if with_errors:
                row.append("")
        else:
            row.extend("" for _ in columns)
            row.append(outcome.error)
        rows.append(row)

    return _to_csv(rows)


def render_fixed(header: Sequence[str], outcomes: Sequence[RowOutcome]) -> str:
    """Render the fixed city/county/state tax table."""
    return _table(header, outcomes, FIXED_TAX_COLUMNS)


def dynamic_columns(header: Sequence[str], names: Sequence[str]) -> List[Tuple[str, str]]:
    """Pair each jurisdiction with a unique column title.

    A jurisdiction whose name is already an input column or the error column
    is titled "<name> (2)", "<name> (3)" and so on.
    """
    taken = set(header) | {ERROR_COLUMN}
    columns = []
    for name in names:
        title, suffix = name, 2
        while title in taken:
            title = f"{name} ({suffix})"
            suffix += 1
        taken.add(title)
        columns.append((title, name))
    return columns


def render_dynamic(header: Sequence[str], outcomes: Sequence[RowOutcome]) -> str:
    """Render the table with one tax column per jurisdiction."""
    columns = dynamic_columns(header, jurisdiction_columns(outcomes))
    return _table(header, outcomes, columns)


def render_totals(outcomes: Sequence[RowOutcome]) -> str:
    """Render the per-jurisdiction totals table."""
    records = [outcome for outcome in outcomes if isinstance(outcome, EnrichedRecord)]
    summed = totals(records)
    rows: List[Sequence[str]] = [TOTALS_HEADER]
    rows.extend((name, format_money(summed[name])) for name in sorted(summed))
    return _to_csv(rows)


def build_archive(entries: Dict[str, str]) -> bytes:
    """Package named text entries into a ZIP archive."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for name, text in entries.items():
            info = zipfile.ZipInfo(name, date_time=ARCHIVE_TIMESTAMP)
            info.compress_type = zipfile.ZIP_DEFLATED
            archive.writestr(info, text.encode("utf-8"))
    return buffer.getvalue()


def write_report(
    shape: ReportShape,
    header: Sequence[str],
    outcomes: Sequence[RowOutcome]
) -> Tuple[bytes, str]:
    """Serialize outcomes in the requested shape.

    Args:
        shape: Report shape
        header: Input header columns
        outcomes: Enriched records and row failures

    Returns:
        Tuple of (payload, media type)
    """
    shape = ReportShape(shape)
    if shape == ReportShape.FIXED:
        return render_fixed(header, outcomes).encode("utf-8"), CSV_MEDIA_TYPE
    if shape == ReportShape.DYNAMIC:
        return render_dynamic(header, outcomes).encode("utf-8"), CSV_MEDIA_TYPE

    archive = build_archive({
        CHARGE_REPORT_NAME: render_dynamic(header, outcomes),
        JURISDICTION_REPORT_NAME: render_totals(outcomes),
    })
    return archive, ZIP_MEDIA_TYPE
