from __future__ import annotations

import json
import uuid

import pandas as pd
import pytest

from tableside.core.errors import ValidationFailed
from tableside.services import spreadsheet
from tableside.services.menu_import import validate_records


def test_template_csv_parses_into_valid_records() -> None:
    records = spreadsheet.parse_upload("menu.csv", spreadsheet.template_csv().encode())

    assert len(records) == 2
    pizza = records[0]
    assert pizza["allergens"] == ["gluten", "dairy"]
    assert pizza["is_vegetarian"] is True
    assert pizza["customizations"][0]["name"] == "Crust Type"
    assert "customizations" not in records[1]

    report = validate_records(records)
    assert report.invalid == 0


def test_template_workbook_round_trips() -> None:
    records = spreadsheet.parse_upload("menu.xlsx", spreadsheet.template_workbook())

    assert [r["name"] for r in records] == ["Margherita Pizza", "Caesar Salad"]
    assert validate_records(records).valid == 2


def test_json_upload_accepts_list_or_items_key() -> None:
    items = [{"name": "Tea", "description": "Green", "price": 2, "category": "drinks"}]

    assert spreadsheet.parse_upload("menu.json", json.dumps(items).encode()) == items
    assert spreadsheet.parse_upload("menu.json", json.dumps({"items": items}).encode()) == items


@pytest.mark.parametrize("filename, content", [
    ("menu.txt", b"name,price"),
    ("menu.json", b"{not json"),
    ("menu.json", b'{"menu": "nope"}'),
    ("menu.xlsx", b"definitely not a workbook"),
])
def test_bad_uploads_are_rejected(filename, content) -> None:
    with pytest.raises(ValidationFailed):
        spreadsheet.parse_upload(filename, content)


def test_blank_cells_are_dropped() -> None:
    csv = "name,description,price,category,calories\nSoup,Hot,4.00,soups,\n"

    (record,) = spreadsheet.parse_upload("menu.csv", csv.encode())

    assert record == {"name": "Soup", "description": "Hot", "price": "4.00", "category": "soups"}


def test_export_menu_writes_workbook() -> None:
    restaurant_id = uuid.uuid4().hex
    rows = [
        {"name": "Tea", "description": "Green", "price": "2.00", "category": "drinks"},
        {"name": "Cake", "description": "Chocolate", "price": "5.50", "category": "desserts"},
    ]

    result = spreadsheet.export_menu(restaurant_id, rows)

    assert result["success"], result["message"]
    df = pd.read_excel(result["path"], dtype=str, engine="openpyxl")
    assert list(df.columns) == spreadsheet.MENU_COLUMNS
    assert df["name"].tolist() == ["Tea", "Cake"]
