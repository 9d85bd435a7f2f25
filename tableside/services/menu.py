"""
Menu Catalog Service

Menu item CRUD, availability toggling, per-category statistics and the
conversion of stored rows into the pricing engine's ``MenuCatalog``.
"""

import logging
import uuid
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tableside.core.errors import NotFound, ValidationFailed
from tableside.models import MenuItem
from tableside.services.pricing import (
    CatalogItem,
    CustomizationGroup,
    MenuCatalog,
    SelectionType,
    money,
    parse_selection_type,
    to_decimal,
)
from tableside.services.restaurants import get_restaurant

logger = logging.getLogger(__name__)

MAX_SELECTIONS_LIMIT = 10


# =============================================================================
# FIELD CLEANING
# =============================================================================

def _clean_list(values: Any) -> list[str]:
    if not values:
        return []
    if isinstance(values, str):
        values = values.split(",")
    return [str(v).strip() for v in values if str(v).strip()]


def _optional_int(value: Any, field_name: str) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationFailed(f"{field_name} must be a whole number", field=field_name)


def clean_customizations(raw: Any) -> list[dict]:
    """
    Validate customization groups and return them in stored form.

    Groups keep their order; a group without an id gets one.
    """
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValidationFailed("Customizations must be a list", field="customizations")

    groups = []
    for custom in raw:
        name = str(custom.get("name") or "").strip()
        if not name:
            raise ValidationFailed("All customizations must have a name", field="customizations")

        selection_type = parse_selection_type(custom.get("type", SelectionType.SINGLE))

        options = custom.get("options")
        if not options or not isinstance(options, list):
            raise ValidationFailed(
                f'Customization "{name}" must have at least one option', field="customizations"
            )

        cleaned_options = []
        for option in options:
            option_name = str(option.get("name") or "").strip()
            if not option_name:
                raise ValidationFailed(
                    f'All options in "{name}" must have a name', field="customizations"
                )
            try:
                price = to_decimal(option.get("price", 0))
            except ValidationFailed:
                raise ValidationFailed(
                    f'Invalid price for option "{option_name}"', field="customizations"
                )
            if price < 0:
                raise ValidationFailed(
                    f'Invalid price for option "{option_name}"', field="customizations"
                )
            cleaned_options.append({"name": option_name, "price": str(money(price))})

        max_selections = custom.get("max_selections")
        if selection_type == SelectionType.MULTI and max_selections is not None:
            if (
                isinstance(max_selections, bool)
                or not isinstance(max_selections, int)
                or not 1 <= max_selections <= MAX_SELECTIONS_LIMIT
            ):
                raise ValidationFailed(
                    f'max_selections for "{name}" must be between 1 and {MAX_SELECTIONS_LIMIT}',
                    field="customizations",
                )
        else:
            max_selections = None

        groups.append({
            "id": str(custom.get("id") or uuid.uuid4().hex[:8]),
            "name": name,
            "type": selection_type.value,
            "required": bool(custom.get("required", False)),
            "max_selections": max_selections,
            "options": cleaned_options,
        })
    return groups


def clean_item_fields(data: dict, partial: bool = False) -> dict:
    """
    Validate and normalise menu item fields.

    With ``partial`` only the keys present in ``data`` are checked, so an
    update can touch a single field.
    """
    cleaned: dict[str, Any] = {}

    def present(key: str) -> bool:
        return key in data if partial else True

    if present("name"):
        name = str(data.get("name") or "").strip()
        if not name:
            raise ValidationFailed("Item name is required", field="name")
        cleaned["name"] = name

    if present("description"):
        description = str(data.get("description") or "").strip()
        if not description:
            raise ValidationFailed("Description is required", field="description")
        cleaned["description"] = description

    if present("price"):
        try:
            price = to_decimal(data.get("price"))
        except ValidationFailed:
            raise ValidationFailed("Valid price is required", field="price")
        if price < 0:
            raise ValidationFailed("Valid price is required", field="price")
        cleaned["price"] = money(price)

    if present("category"):
        category = str(data.get("category") or "").strip().lower()
        if not category:
            raise ValidationFailed("Category is required", field="category")
        cleaned["category"] = category

    if "customizations" in data:
        cleaned["customizations"] = clean_customizations(data["customizations"])
    for key in ("allergens", "dietary_info"):
        if key in data:
            cleaned[key] = _clean_list(data[key])
    for key in ("image", "allergen_notes"):
        if key in data:
            cleaned[key] = str(data[key] or "").strip()
    for key in ("available", "is_vegetarian", "is_spicy"):
        if key in data and data[key] is not None:
            cleaned[key] = bool(data[key])
    for key in ("preparation_time", "calories"):
        if key in data:
            cleaned[key] = _optional_int(data[key], key)

    return cleaned


# =============================================================================
# CATALOG
# =============================================================================

def to_catalog_item(item: MenuItem) -> CatalogItem:
    return CatalogItem(
        id=item.id,
        name=item.name,
        price=Decimal(item.price),
        category=item.category,
        description=item.description,
        allergens=frozenset(item.allergens or []),
        dietary_info=frozenset(item.dietary_info or []),
        available=item.available,
        customizations=tuple(CustomizationGroup.from_dict(c) for c in item.customizations or []),
    )


async def list_items(
    db: AsyncSession, restaurant_id: str, include_unavailable: bool = True
) -> list[MenuItem]:
    query = select(MenuItem).where(MenuItem.restaurant_id == restaurant_id)
    if not include_unavailable:
        query = query.where(MenuItem.available.is_(True))
    result = await db.execute(query.order_by(MenuItem.category, MenuItem.name))
    return list(result.scalars().all())


async def load_catalog(db: AsyncSession, restaurant_id: str) -> MenuCatalog:
    """The restaurant's full catalog; availability is enforced by the cart."""
    await get_restaurant(db, restaurant_id)
    return MenuCatalog(to_catalog_item(item) for item in await list_items(db, restaurant_id))


async def get_menu_by_restaurant(
    db: AsyncSession, restaurant_id: str, include_unavailable: bool = False
) -> dict[str, list[MenuItem]]:
    """Menu grouped by category; categories and items sorted by name."""
    await get_restaurant(db, restaurant_id)

    menu: dict[str, list[MenuItem]] = {}
    for item in await list_items(db, restaurant_id, include_unavailable):
        menu.setdefault(item.category, []).append(item)
    return menu


# =============================================================================
# CRUD
# =============================================================================

async def get_item(db: AsyncSession, item_id: str) -> MenuItem:
    item = await db.get(MenuItem, item_id)
    if item is None:
        raise NotFound("Menu item", item_id)
    return item


def build_item(restaurant_id: str, fields: dict) -> MenuItem:
    return MenuItem(
        restaurant_id=restaurant_id,
        name=fields["name"],
        description=fields["description"],
        price=fields["price"],
        category=fields["category"],
        image=fields.get("image", ""),
        available=fields.get("available", True),
        allergens=fields.get("allergens", []),
        allergen_notes=fields.get("allergen_notes", ""),
        dietary_info=fields.get("dietary_info", []),
        customizations=fields.get("customizations", []),
        is_vegetarian=fields.get("is_vegetarian", False),
        is_spicy=fields.get("is_spicy", False),
        preparation_time=fields.get("preparation_time"),
        calories=fields.get("calories"),
    )


async def create_item(db: AsyncSession, restaurant_id: str, data: dict) -> MenuItem:
    await get_restaurant(db, restaurant_id)
    item = build_item(restaurant_id, clean_item_fields(data))
    db.add(item)
    await db.commit()

    logger.info(f'Menu item "{item.name}" created for restaurant {restaurant_id}')
    return item


async def update_item(db: AsyncSession, item_id: str, data: dict) -> MenuItem:
    item = await get_item(db, item_id)
    for key, value in clean_item_fields(data, partial=True).items():
        setattr(item, key, value)
    await db.commit()

    logger.info(f"Menu item {item_id} updated")
    return item


async def delete_item(db: AsyncSession, item_id: str) -> None:
    item = await get_item(db, item_id)
    await db.delete(item)
    await db.commit()
    logger.info(f"Menu item {item_id} deleted")


async def set_availability(db: AsyncSession, item_id: str, available: bool) -> MenuItem:
    item = await get_item(db, item_id)
    item.available = available
    await db.commit()

    logger.info(f"Menu item {item_id} {'enabled' if available else 'disabled'}")
    return item


# =============================================================================
# STATISTICS
# =============================================================================

def _average(prices: list[Decimal]) -> Decimal:
    if not prices:
        return Decimal("0.00")
    return money(sum(prices, Decimal("0")) / len(prices))


async def list_categories(db: AsyncSession, restaurant_id: str) -> list[dict]:
    await get_restaurant(db, restaurant_id)

    categories: dict[str, list[MenuItem]] = {}
    for item in await list_items(db, restaurant_id):
        categories.setdefault(item.category, []).append(item)

    return [
        {
            "name": name,
            "item_count": len(items),
            "available_count": sum(1 for i in items if i.available),
            "average_price": _average([Decimal(i.price) for i in items]),
        }
        for name, items in sorted(categories.items())
    ]


async def menu_stats(db: AsyncSession, restaurant_id: str) -> dict:
    await get_restaurant(db, restaurant_id)

    items = await list_items(db, restaurant_id)
    prices = [Decimal(i.price) for i in items]
    available = sum(1 for i in items if i.available)

    return {
        "total_items": len(items),
        "available_items": available,
        "unavailable_items": len(items) - available,
        "average_price": _average(prices),
        "price_range": {
            "min": min(prices) if prices else Decimal("0.00"),
            "max": max(prices) if prices else Decimal("0.00"),
        },
        "total_categories": len({i.category for i in items}),
    }


def find_duplicate(items: list[MenuItem], name: str, category: str) -> Optional[MenuItem]:
    """Case-insensitive (name, category) match."""
    key = (name.strip().lower(), category.strip().lower())
    for item in items:
        if (item.name.strip().lower(), item.category.strip().lower()) == key:
            return item
    return None
