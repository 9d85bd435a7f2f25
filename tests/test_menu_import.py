from __future__ import annotations

from decimal import Decimal

import pytest

from tableside.core.errors import ValidationFailed
from tableside.services.menu import list_items
from tableside.services.menu_import import (
    ImportOptions,
    import_records,
    validate_record,
    validate_records,
)


def record(**overrides):
    data = {
        "name": "Garlic Bread",
        "description": "Toasted with herb butter",
        "price": 4.5,
        "category": "Starters",
    }
    data.update(overrides)
    return data


@pytest.mark.parametrize("bad, reason", [
    (record(name=""), "name is required"),
    (record(description=None), "description is required"),
    (record(price="free"), "price must be a number"),
    (record(price=0), "price must be greater than 0"),
    (record(category="  "), "category is required"),
    (record(customizations=[{"name": "Size", "options": []}]), "at least one option"),
    (record(customizations=[{"name": "Size", "options": [{"name": "L", "price": -1}]}]), "invalid price"),
    ("not a record", "record must be an object"),
])
def test_validate_record_reasons(bad, reason) -> None:
    with pytest.raises(ValidationFailed) as exc:
        validate_record(bad)
    assert reason in exc.value.message


def test_validate_record_normalises_fields() -> None:
    fields = validate_record(record(price="4.499", allergens="gluten, dairy"))

    assert fields["price"] == Decimal("4.50")
    assert fields["category"] == "starters"
    assert fields["allergens"] == ["gluten", "dairy"]


def test_validate_records_counts_invalid() -> None:
    records = [record(name=f"Item {i}") for i in range(7)]
    records[1]["price"] = -3
    records[4]["name"] = ""
    records[6]["category"] = None

    report = validate_records(records)

    assert (report.total, report.valid, report.invalid) == (7, 4, 3)
    assert report.errors[0] == "Item 2: price must be greater than 0"
    assert report.errors[1].startswith("Item 5:")


async def test_import_skips_duplicates(db, restaurant, menu_items) -> None:
    records = [
        record(name="Margherita Pizza", category="pizza", price=11),
        record(name="Garlic Bread"),
    ]

    report = await import_records(db, restaurant.id, records, ImportOptions(skip_duplicates=True))

    assert report.skipped == 1
    assert report.successful == 1
    (created,) = report.created
    assert (created["name"], created["category"], created["price"]) == ("Garlic Bread", "starters", Decimal("4.50"))
    assert len(await list_items(db, restaurant.id)) == 3


async def test_import_duplicate_match_ignores_case(db, restaurant, menu_items) -> None:
    records = [record(name="margherita pizza", category="PIZZA")]

    report = await import_records(db, restaurant.id, records)

    assert report.skipped == 1


async def test_import_overwrite_replaces_existing(db, restaurant, menu_items) -> None:
    records = [record(name="Margherita Pizza", category="pizza", price="12.50", description="New")]

    report = await import_records(
        db, restaurant.id, records, ImportOptions(skip_duplicates=True, overwrite=True)
    )

    assert report.updated == [{
        "id": menu_items["pizza"].id,
        "name": "Margherita Pizza",
        "category": "pizza",
        "price": Decimal("12.50"),
    }]
    assert report.skipped == 0
    pizza = next(i for i in await list_items(db, restaurant.id) if i.id == menu_items["pizza"].id)
    assert pizza.price == Decimal("12.50")
    assert pizza.description == "New"


async def test_import_without_dedup_creates_second_copy(db, restaurant, menu_items) -> None:
    records = [record(name="Margherita Pizza", category="pizza")]

    report = await import_records(
        db, restaurant.id, records, ImportOptions(skip_duplicates=False, overwrite=False)
    )

    assert report.successful == 1
    names = [i.name for i in await list_items(db, restaurant.id)]
    assert names.count("Margherita Pizza") == 2


async def test_import_reports_invalid_rows(db, restaurant) -> None:
    records = [record(name=f"Dish {i}") for i in range(5)] + [record(price="x"), record(name="")]

    report = await import_records(db, restaurant.id, records)

    assert report.successful == 5
    assert report.failed == 2
    assert report.errors == ["Item 6: price must be a number", "Item 7: name is required"]


async def test_validate_only_writes_nothing(db, restaurant) -> None:
    report = await import_records(
        db, restaurant.id, [record(), record(name="Bruschetta")], ImportOptions(validate_only=True)
    )

    assert report.successful == 2
    assert report.validate_only
    assert report.created == []
    assert await list_items(db, restaurant.id) == []


async def test_duplicates_within_one_batch_are_skipped(db, restaurant) -> None:
    report = await import_records(db, restaurant.id, [record(), record()])

    assert report.successful == 1
    assert report.skipped == 1
