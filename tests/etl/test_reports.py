"""
Tests for the report writer.

This module tests the fixed, dynamic and dual report shapes, money
formatting and the inline error column.
"""

import csv
import io
import zipfile

import pytest

from salestax.etl.parser import HEADER_WITH_DATE, HEADER_WITHOUT_DATE
from salestax.etl.reports import (
    CHARGE_REPORT_NAME,
    CSV_MEDIA_TYPE,
    JURISDICTION_REPORT_NAME,
    ZIP_MEDIA_TYPE,
    ReportShape,
    build_archive,
    dynamic_columns,
    format_money,
    jurisdiction_columns,
    render_dynamic,
    render_fixed,
    render_totals,
    write_report,
)
from salestax.models import Address, ChargeRecord, EnrichedRecord, RowFailure


def make_enriched(row_index, client, charge, taxes, date="02/22/2025"):
    fields = (client, date, str(charge), "123 Main St", "Austin", "TX", "78701")
    record = ChargeRecord(
        row_index=row_index,
        client=client,
        date=date,
        month=2,
        day=22,
        year=2025,
        quarter=1,
        charge=charge,
        address=Address(street="123 Main St", city="Austin", state="TX", zip="78701"),
        raw_fields=fields,
    )
    return EnrichedRecord(record=record, taxes=taxes)


def read_rows(text):
    return list(csv.reader(io.StringIO(text)))


@pytest.mark.parametrize(
    "amount, expected",
    [(6.25, "6.25"), (0.5, "0.50"), (2, "2.00"), (0.125, "0.12"), (1.005, "1.00"), (10.0 * 0.0625, "0.62")],
)
def test_format_money(amount, expected):
    assert format_money(amount) == expected


def test_render_fixed():
    """Test the fixed report keeps only city, county and state."""
    outcomes = [
        make_enriched(0, "John", 100, {"STATE": 6.25, "COUNTY": 0.5, "CITY": 2.0, "SPD": 1.0}),
    ]
    rows = read_rows(render_fixed(HEADER_WITH_DATE, outcomes))

    assert rows[0] == [
        "client", "date", "charge", "street address", "city", "State", "zip code",
        "city tax", "county tax", "state tax",
    ]
    assert rows[1] == [
        "John", "02/22/2025", "100.00", "123 Main St", "Austin", "TX", "78701",
        "2.00", "0.50", "6.25",
    ]


def test_render_fixed_without_date():
    """Test the fixed report without a date column."""
    record = ChargeRecord(
        row_index=0,
        client="John",
        month=5,
        day=1,
        year=2025,
        quarter=2,
        charge=40.5,
        address=Address(street="1 Elm", city="Austin", state="TX", zip="78701"),
        raw_fields=("John", "40.5", "1 Elm", "Austin", "TX", "78701"),
    )
    outcomes = [EnrichedRecord(record=record, taxes={"STATE": 40.5 * 0.0625})]
    rows = read_rows(render_fixed(HEADER_WITHOUT_DATE, outcomes))

    assert rows[0][-3:] == ["city tax", "county tax", "state tax"]
    assert rows[1] == ["John", "40.50", "1 Elm", "Austin", "TX", "78701", "0.00", "0.00", "2.53"]


def test_render_dynamic_union_of_jurisdictions():
    """Test dynamic columns are the union, with 0.00 for missing ones."""
    outcomes = [
        make_enriched(0, "John", 100, {"TEXAS STATE": 6.25, "AUSTIN": 2.0}),
        make_enriched(1, "Jane", 200, {"TEXAS STATE": 12.5, "HOUSTON MTA": 2.0}),
    ]
    assert jurisdiction_columns(outcomes) == ["AUSTIN", "HOUSTON MTA", "TEXAS STATE"]

    rows = read_rows(render_dynamic(HEADER_WITH_DATE, outcomes))
    assert rows[0] == list(HEADER_WITH_DATE) + ["AUSTIN", "HOUSTON MTA", "TEXAS STATE"]
    assert rows[1][-3:] == ["2.00", "0.00", "6.25"]
    assert rows[2][-3:] == ["0.00", "2.00", "12.50"]
    assert all(len(row) == len(rows[0]) for row in rows)


def test_render_restores_input_order():
    """Test rows are written by row index."""
    outcomes = [
        make_enriched(1, "Jane", 200, {"AUSTIN": 4.0}),
        make_enriched(0, "John", 100, {"AUSTIN": 2.0}),
    ]
    rows = read_rows(render_dynamic(HEADER_WITH_DATE, outcomes))
    assert [row[0] for row in rows[1:]] == ["John", "Jane"]


def test_render_totals():
    """Test totals per jurisdiction."""
    outcomes = [
        make_enriched(0, "John", 100, {"TEXAS STATE": 6.25, "AUSTIN": 2.0}),
        make_enriched(1, "Jane", 200, {"TEXAS STATE": 12.5, "HOUSTON MTA": 2.0}),
        RowFailure(row_index=2, raw_fields=("Bob",) + ("",) * 6, error="boom"),
    ]
    rows = read_rows(render_totals(outcomes))
    assert rows == [
        ["Jurisdiction", "total"],
        ["AUSTIN", "2.00"],
        ["HOUSTON MTA", "2.00"],
        ["TEXAS STATE", "18.75"],
    ]


def test_error_column():
    """Test failed rows get blank taxes and an error message."""
    outcomes = [
        make_enriched(0, "John", 100, {"STATE": 6.25, "COUNTY": 0.5, "CITY": 2.0}),
        RowFailure(
            row_index=1,
            raw_fields=("Jane", "02/22/2025", "200.00", "9 Oak St", "Austin", "TX", "78701"),
            error="Rate service returned status 500: boom",
        ),
    ]
    rows = read_rows(render_fixed(HEADER_WITH_DATE, outcomes))

    assert rows[0][-1] == "error"
    assert rows[1][-4:] == ["2.00", "0.50", "6.25", ""]
    assert rows[2] == [
        "Jane", "02/22/2025", "200.00", "9 Oak St", "Austin", "TX", "78701",
        "", "", "", "Rate service returned status 500: boom",
    ]


def test_no_error_column_without_failures():
    outcomes = [make_enriched(0, "John", 100, {"STATE": 6.25})]
    rows = read_rows(render_fixed(HEADER_WITH_DATE, outcomes))
    assert "error" not in rows[0]


def test_dynamic_titles_never_repeat_a_column():
    """Test jurisdictions named like an input or error column get their own title."""
    outcomes = [
        make_enriched(0, "John", 100, {"error": 1.0, "city": 2.0, "AUSTIN": 3.0}),
        RowFailure(row_index=1, raw_fields=("Jane",) + ("",) * 6, error="boom"),
    ]
    rows = read_rows(render_dynamic(HEADER_WITH_DATE, outcomes))

    assert rows[0] == list(HEADER_WITH_DATE) + ["AUSTIN", "city (2)", "error (2)", "error"]
    assert len(set(rows[0])) == len(rows[0])
    assert rows[1][-4:] == ["3.00", "2.00", "1.00", ""]
    assert rows[2][-1] == "boom"


def test_dynamic_columns():
    assert dynamic_columns(HEADER_WITHOUT_DATE, ["AUSTIN"]) == [("AUSTIN", "AUSTIN")]
    assert dynamic_columns(("error (2)",), ["error"]) == [("error (3)", "error")]


def test_write_report_csv_shapes():
    outcomes = [make_enriched(0, "John", 100, {"STATE": 6.25})]

    payload, media_type = write_report(ReportShape.FIXED, HEADER_WITH_DATE, outcomes)
    assert media_type == CSV_MEDIA_TYPE
    assert payload.decode("utf-8").startswith("client,date,charge")

    payload, media_type = write_report("dynamic", HEADER_WITH_DATE, outcomes)
    assert media_type == CSV_MEDIA_TYPE
    assert payload.decode("utf-8").splitlines()[0].endswith("zip code,STATE")


def test_write_report_dual():
    """Test the dual report archive holds both tables."""
    outcomes = [
        make_enriched(0, "John", 100, {"TEXAS STATE": 6.25, "AUSTIN": 2.0}),
        make_enriched(1, "Jane", 200, {"TEXAS STATE": 12.5}),
    ]
    payload, media_type = write_report(ReportShape.DUAL, HEADER_WITH_DATE, outcomes)
    assert media_type == ZIP_MEDIA_TYPE

    with zipfile.ZipFile(io.BytesIO(payload)) as archive:
        assert archive.namelist() == [CHARGE_REPORT_NAME, JURISDICTION_REPORT_NAME]
        detail = archive.read(CHARGE_REPORT_NAME).decode("utf-8")
        summary = archive.read(JURISDICTION_REPORT_NAME).decode("utf-8")

    assert detail == render_dynamic(HEADER_WITH_DATE, outcomes)
    assert read_rows(summary) == [["Jurisdiction", "total"], ["AUSTIN", "2.00"], ["TEXAS STATE", "18.75"]]


def test_build_archive_is_deterministic():
    entries = {"a.csv": "x\n1\n", "b.csv": "y\n2\n"}
    assert build_archive(entries) == build_archive(dict(entries))
