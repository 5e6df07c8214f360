import io
import json

import pandas as pd
import pytest

from voids_dashboard.config import EXPORT_COLUMNS
from voids_dashboard.dashboard import get_contractor_overview, get_recharge_overview
from voids_dashboard.exports import (
    export_table,
    pdf_rows,
    to_csv_bytes,
    to_json_bytes,
    to_pdf_bytes,
    to_xlsx_bytes,
)


@pytest.fixture
def contractor_table(surveys):
    return get_contractor_overview(surveys)["table"]


def test_csv_keeps_column_order(contractor_table):
    text = to_csv_bytes(contractor_table, "contractor").decode("utf-8")
    assert text.splitlines()[0] == ",".join(EXPORT_COLUMNS["contractor"])
    assert len(text.splitlines()) == 3


def test_csv_reorders_shuffled_columns(contractor_table):
    shuffled = contractor_table[list(reversed(contractor_table.columns))]
    header = to_csv_bytes(shuffled, "contractor").decode("utf-8").splitlines()[0]
    assert header == ",".join(EXPORT_COLUMNS["contractor"])


def test_json_is_a_list_of_records(contractor_table):
    records = json.loads(to_json_bytes(contractor_table, "contractor"))
    assert [r["Description"] for r in records] == ["Fencing", "Roof repair"]
    assert list(records[0]) == EXPORT_COLUMNS["contractor"]


def test_xlsx_round_trips_through_openpyxl(contractor_table):
    payload = to_xlsx_bytes(contractor_table, "contractor")
    assert payload[:2] == b"PK"

    back = pd.read_excel(io.BytesIO(payload), engine="openpyxl")
    assert list(back.columns) == EXPORT_COLUMNS["contractor"]
    assert len(back) == 2


def test_pdf_rows_follow_displayed_rows_and_column_order(surveys):
    table = get_recharge_overview(surveys)["table"]
    shuffled = table[list(reversed(table.columns))]

    rows = pdf_rows(shuffled, "recharge")
    assert rows[0] == EXPORT_COLUMNS["recharge"]
    assert [row[0] for row in rows[1:]] == ["1 Mill Lane, Bristol", "2 Church Road, Gloucester"]
    assert rows[1][-1] == "Replace door handle"


def test_pdf_export_is_a_pdf_document(surveys):
    table = get_recharge_overview(surveys)["table"]
    payload, mime = export_table(table, "pdf", "recharge")
    assert mime == "application/pdf"
    assert payload.startswith(b"%PDF")


def test_pdf_export_of_empty_table_keeps_the_header():
    table = get_recharge_overview([])["table"]
    assert pdf_rows(table, "recharge") == [EXPORT_COLUMNS["recharge"]]
    assert to_pdf_bytes(table, "recharge").startswith(b"%PDF")


def test_missing_columns_are_rejected():
    with pytest.raises(ValueError):
        to_csv_bytes(pd.DataFrame({"Surveyor": ["Alice"]}), "contractor")


def test_export_table_returns_mime_type(contractor_table):
    payload, mime = export_table(contractor_table, "CSV", "contractor")
    assert mime == "text/csv"
    assert payload.startswith(b"Surveyor")


def test_export_table_rejects_unknown_format(contractor_table):
    with pytest.raises(ValueError):
        export_table(contractor_table, "docx")
