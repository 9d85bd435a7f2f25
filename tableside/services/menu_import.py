"""
Bulk Menu Import

Validates already-parsed menu records and upserts them into a restaurant's
catalog. Every record is judged on its own: a bad record is reported as
``"Item {n}: {reason}"`` (1-based) and never aborts the batch.

Duplicates are matched case-insensitively on (name, category) against the
existing menu and against records earlier in the same batch.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from tableside.core.errors import ValidationFailed
from tableside.models import MenuItem
from tableside.services.menu import (
    build_item,
    clean_item_fields,
    find_duplicate,
    list_items,
)
from tableside.services.pricing import parse_selection_type, to_decimal
from tableside.services.restaurants import get_restaurant

logger = logging.getLogger(__name__)

# Columns an overwrite replaces wholesale
REPLACED_COLUMNS = (
    "name",
    "description",
    "price",
    "category",
    "image",
    "available",
    "allergens",
    "allergen_notes",
    "dietary_info",
    "customizations",
    "is_vegetarian",
    "is_spicy",
    "preparation_time",
    "calories",
)


@dataclass
class ImportOptions:
    skip_duplicates: bool = True
    overwrite: bool = False
    validate_only: bool = False


@dataclass
class ValidationReport:
    total: int = 0
    valid: int = 0
    invalid: int = 0
    errors: list[str] = field(default_factory=list)
    items: list[dict] = field(default_factory=list)


@dataclass
class ImportReport:
    successful: int = 0
    failed: int = 0
    skipped: int = 0
    created: list[dict] = field(default_factory=list)
    updated: list[dict] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    validate_only: bool = False


def item_summary(item: MenuItem) -> dict:
    """What the import report says about a created or updated item."""
    return {
        "id": item.id,
        "name": item.name,
        "category": item.category,
        "price": item.price,
    }


def _blank(value: Any) -> bool:
    return value is None or not str(value).strip()


def _check_customizations(customizations: Any) -> None:
    if not isinstance(customizations, list):
        raise ValidationFailed("customizations must be a list")

    for index, group in enumerate(customizations, start=1):
        if not isinstance(group, Mapping) or _blank(group.get("name")):
            raise ValidationFailed(f"customization {index} must have a name")
        name = str(group["name"]).strip()

        parse_selection_type(group.get("type", "single"))

        options = group.get("options")
        if not isinstance(options, list) or not options:
            raise ValidationFailed(f'customization "{name}" must have at least one option')

        for option in options:
            if not isinstance(option, Mapping) or _blank(option.get("name")):
                raise ValidationFailed(f'all options in "{name}" must have a name')
            try:
                price = to_decimal(option.get("price"))
            except ValidationFailed:
                raise ValidationFailed(f'invalid price for option "{option["name"]}"')
            if price < 0:
                raise ValidationFailed(f'invalid price for option "{option["name"]}"')


def validate_record(record: Any) -> dict:
    """
    Check one raw record and return its cleaned item fields.

    Raises:
        ValidationFailed: with the reason the record is rejected
    """
    if not isinstance(record, Mapping):
        raise ValidationFailed("record must be an object")

    if _blank(record.get("name")):
        raise ValidationFailed("name is required", field="name")
    if _blank(record.get("description")):
        raise ValidationFailed("description is required", field="description")

    try:
        price = to_decimal(record.get("price"))
    except ValidationFailed:
        raise ValidationFailed("price must be a number", field="price")
    if price <= 0:
        raise ValidationFailed("price must be greater than 0", field="price")

    if _blank(record.get("category")):
        raise ValidationFailed("category is required", field="category")

    if record.get("customizations"):
        _check_customizations(record["customizations"])

    return clean_item_fields(dict(record))


def validate_records(records: Sequence[Any]) -> ValidationReport:
    report = ValidationReport(total=len(records))

    for n, record in enumerate(records, start=1):
        try:
            report.items.append(validate_record(record))
        except ValidationFailed as e:
            report.invalid += 1
            report.errors.append(f"Item {n}: {e.message}")
        else:
            report.valid += 1

    return report


async def import_records(
    db: AsyncSession,
    restaurant_id: str,
    records: Sequence[Any],
    options: Optional[ImportOptions] = None,
) -> ImportReport:
    """
    Upsert records into the restaurant's menu.

    ``overwrite`` takes precedence over ``skip_duplicates``; with both off a
    duplicate is created alongside the existing item. ``validate_only``
    runs the same decisions without writing anything.
    """
    options = options or ImportOptions()
    await get_restaurant(db, restaurant_id)

    known: list[MenuItem] = await list_items(db, restaurant_id)
    report = ImportReport(validate_only=options.validate_only)

    for n, record in enumerate(records, start=1):
        try:
            fields = validate_record(record)
        except ValidationFailed as e:
            report.failed += 1
            report.errors.append(f"Item {n}: {e.message}")
            continue

        duplicate = find_duplicate(known, fields["name"], fields["category"])

        if duplicate is not None and options.overwrite:
            if not options.validate_only:
                replacement = build_item(restaurant_id, fields)
                for column in REPLACED_COLUMNS:
                    setattr(duplicate, column, getattr(replacement, column))
                report.updated.append(item_summary(duplicate))
            report.successful += 1
            continue

        if duplicate is not None and options.skip_duplicates:
            report.skipped += 1
            continue

        item = build_item(restaurant_id, fields)
        if not options.validate_only:
            db.add(item)
            await db.flush()
            report.created.append(item_summary(item))
        known.append(item)
        report.successful += 1

    if not options.validate_only:
        await db.commit()

    logger.info(
        f"Menu import for {restaurant_id}: {report.successful} successful, "
        f"{report.failed} failed, {report.skipped} skipped"
        + (" (validate only)" if options.validate_only else "")
    )
    return report
