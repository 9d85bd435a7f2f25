"""
Cart / Pricing Engine

Prices a table's selections against a menu catalog:

    catalog = MenuCatalog([...])
    cart = Cart(catalog, tax_rate=Decimal("0.08"))
    line = cart.add_item(pizza_id, {"Crust Type": "Thin"})
    cart.update_quantity(line.line_id, +1)
    totals = cart.quote()

All arithmetic is done with ``Decimal``; rounding to cents only happens in
``quote()`` and ``money()``. The cart never touches the database: it is
rebuilt from the submitted lines and a catalog snapshot on every request.
``to_dict()`` / ``from_dict()`` let a caller hold a cart between calls;
``from_dict()`` re-prices everything from the catalog.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Any, Iterable, Mapping, Optional, Sequence, Union

from tableside.core.errors import NotFound, ValidationFailed

CENT = Decimal("0.01")
ZERO = Decimal("0")
DEFAULT_TAX_RATE = Decimal("0.08")
TAX_RATE_QUANTUM = Decimal("0.000001")

Number = Union[int, float, str, Decimal]
Selections = Mapping[str, Union[str, Sequence[str]]]


def to_decimal(value: Any, field_name: str = "price") -> Decimal:
    """Convert user input to Decimal, going through ``str`` for floats."""
    if isinstance(value, bool) or value is None:
        raise ValidationFailed(f"{field_name} must be a number", field=field_name)
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            raise ValidationFailed(f"{field_name} must be a number", field=field_name)
    if not result.is_finite():
        raise ValidationFailed(f"{field_name} must be a number", field=field_name)
    return result


def money(value: Decimal) -> Decimal:
    """Round to cents, half-up."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def validate_tax_rate(rate: Number) -> Decimal:
    """A fraction in [0, 1], rounded to the six places restaurants store."""
    value = to_decimal(rate, "tax_rate")
    if value < 0 or value > 1:
        raise ValidationFailed("tax_rate must be between 0 and 1", field="tax_rate")
    return value.quantize(TAX_RATE_QUANTUM, rounding=ROUND_HALF_UP)


# =============================================================================
# CATALOG
# =============================================================================

class SelectionType(str, Enum):
    SINGLE = "single"
    MULTI = "multi"


# Names used by imports and older admin consoles
SELECTION_TYPE_ALIASES = {
    "single": SelectionType.SINGLE,
    "radio": SelectionType.SINGLE,
    "select": SelectionType.SINGLE,
    "multi": SelectionType.MULTI,
    "checkbox": SelectionType.MULTI,
}


def parse_selection_type(value: Any) -> SelectionType:
    if isinstance(value, SelectionType):
        return value
    try:
        return SELECTION_TYPE_ALIASES[str(value).strip().lower()]
    except KeyError:
        raise ValidationFailed(f"Invalid customization type: {value}", field="customizations")


@dataclass(frozen=True)
class CustomizationOption:
    name: str
    price: Decimal = ZERO


@dataclass(frozen=True)
class CustomizationGroup:
    name: str
    selection_type: SelectionType = SelectionType.SINGLE
    options: tuple[CustomizationOption, ...] = ()
    required: bool = False
    max_selections: Optional[int] = None
    id: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CustomizationGroup":
        return cls(
            id=str(data.get("id") or ""),
            name=str(data["name"]),
            selection_type=parse_selection_type(data.get("type", SelectionType.SINGLE)),
            options=tuple(
                CustomizationOption(name=str(opt["name"]), price=to_decimal(opt.get("price", 0)))
                for opt in data.get("options") or []
            ),
            required=bool(data.get("required", False)),
            max_selections=data.get("max_selections"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.selection_type.value,
            "required": self.required,
            "max_selections": self.max_selections,
            "options": [{"name": opt.name, "price": str(opt.price)} for opt in self.options],
        }

    @property
    def limit(self) -> int:
        if self.selection_type == SelectionType.SINGLE:
            return 1
        return self.max_selections or len(self.options)

    def option(self, name: str) -> Optional[CustomizationOption]:
        for opt in self.options:
            if opt.name == name:
                return opt
        return None


@dataclass(frozen=True)
class CatalogItem:
    """Read-only view of a menu item as the pricing engine sees it."""
    id: str
    name: str
    price: Decimal
    category: str
    description: str = ""
    allergens: frozenset[str] = frozenset()
    dietary_info: frozenset[str] = frozenset()
    available: bool = True
    customizations: tuple[CustomizationGroup, ...] = ()

    def group(self, name: str) -> Optional[CustomizationGroup]:
        for group in self.customizations:
            if group.name == name:
                return group
        return None


class MenuCatalog:
    """Menu items of one restaurant, indexed by id and grouped by category."""

    def __init__(self, items: Iterable[CatalogItem] = ()):
        self._items: dict[str, CatalogItem] = {item.id: item for item in items}

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._items

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self):
        return iter(self._items.values())

    def get(self, item_id: str) -> CatalogItem:
        try:
            return self._items[item_id]
        except KeyError:
            raise NotFound("Menu item", item_id)

    @property
    def categories(self) -> list[str]:
        return sorted({item.category for item in self._items.values()})

    def by_category(self) -> dict[str, list[CatalogItem]]:
        grouped: dict[str, list[CatalogItem]] = {}
        for item in sorted(self._items.values(), key=lambda i: (i.category, i.name)):
            grouped.setdefault(item.category, []).append(item)
        return grouped


# =============================================================================
# CART
# =============================================================================

SelectionKey = tuple[tuple[str, tuple[str, ...]], ...]


def normalize_selections(item: CatalogItem, selections: Optional[Selections]) -> SelectionKey:
    """
    Validate a selection against the item's customization groups.

    Returns a canonical, hashable form: groups sorted by name, option names
    sorted within each group. Two selections are equivalent iff their
    canonical forms are equal.
    """
    chosen: dict[str, tuple[str, ...]] = {}
    for group_name, choice in (selections or {}).items():
        group = item.group(group_name)
        if group is None:
            raise ValidationFailed(
                f'"{item.name}" has no customization "{group_name}"', field="customizations"
            )
        names = [choice] if isinstance(choice, str) else list(choice)
        names = list(dict.fromkeys(names))
        for name in names:
            if group.option(name) is None:
                raise ValidationFailed(
                    f'Unknown option "{name}" for "{group.name}"', field="customizations"
                )
        if len(names) > group.limit:
            raise ValidationFailed(
                f'At most {group.limit} option(s) allowed for "{group.name}"',
                field="customizations",
            )
        if names:
            chosen[group.name] = tuple(sorted(names))

    for group in item.customizations:
        if group.required and group.name not in chosen:
            raise ValidationFailed(
                f'"{group.name}" is required for "{item.name}"', field="customizations"
            )
    return tuple(sorted(chosen.items()))


@dataclass
class CartLine:
    line_id: str
    item: CatalogItem
    quantity: int
    selections: SelectionKey = ()

    @property
    def menu_item_id(self) -> str:
        return self.item.id

    def selected_options(self) -> list[tuple[CustomizationGroup, CustomizationOption]]:
        picked = []
        for group_name, names in self.selections:
            group = self.item.group(group_name)
            for name in names:
                picked.append((group, group.option(name)))
        return picked

    @property
    def surcharge(self) -> Decimal:
        return sum((opt.price for _, opt in self.selected_options()), ZERO)

    @property
    def unit_price(self) -> Decimal:
        return self.item.price + self.surcharge

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class OrderTotals:
    subtotal: Decimal
    tax: Decimal
    total: Decimal
    tax_rate: Decimal

    def to_dict(self) -> dict[str, str]:
        return {
            "subtotal": str(self.subtotal),
            "tax": str(self.tax),
            "total": str(self.total),
            "tax_rate": str(self.tax_rate),
        }


@dataclass
class Cart:
    """A customer's in-progress selection, priced against ``catalog``."""
    catalog: MenuCatalog
    tax_rate: Decimal = DEFAULT_TAX_RATE
    _lines: list[CartLine] = field(default_factory=list, init=False, repr=False)

    def __post_init__(self) -> None:
        self.tax_rate = validate_tax_rate(self.tax_rate)

    @property
    def lines(self) -> tuple[CartLine, ...]:
        return tuple(self._lines)

    @property
    def item_count(self) -> int:
        return sum(line.quantity for line in self._lines)

    def is_empty(self) -> bool:
        return not self._lines

    def line(self, line_id: str) -> CartLine:
        for line in self._lines:
            if line.line_id == line_id:
                return line
        raise NotFound("Cart line", line_id)

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def add_item(self, menu_item_id: str, selections: Optional[Selections] = None) -> CartLine:
        item = self.catalog.get(menu_item_id)
        if not item.available:
            raise ValidationFailed(f'"{item.name}" is not available', field="menu_item_id")
        key = normalize_selections(item, selections)

        for line in self._lines:
            if line.item.id == item.id and line.selections == key:
                line.quantity += 1
                return line

        line = CartLine(line_id=uuid.uuid4().hex[:12], item=item, quantity=1, selections=key)
        self._lines.append(line)
        return line

    def update_quantity(self, line_id: str, delta: int) -> Optional[CartLine]:
        """Add ``delta``; the line is dropped once its quantity reaches zero."""
        line = self.line(line_id)
        line.quantity += delta
        if line.quantity <= 0:
            self._lines.remove(line)
            return None
        return line

    def set_quantity(self, line_id: str, quantity: int) -> CartLine:
        if quantity <= 0:
            raise ValidationFailed("quantity must be a positive integer", field="quantity")
        line = self.line(line_id)
        line.quantity = quantity
        return line

    def remove_item(self, line_id: str) -> None:
        self._lines.remove(self.line(line_id))

    def clear(self) -> None:
        self._lines.clear()

    # -------------------------------------------------------------------------
    # Pricing
    # -------------------------------------------------------------------------

    def compute_subtotal(self) -> Decimal:
        return sum((line.line_total for line in self._lines), ZERO)

    def compute_tax(self, rate: Optional[Number] = None) -> Decimal:
        rate = self.tax_rate if rate is None else validate_tax_rate(rate)
        return self.compute_subtotal() * rate

    def compute_total(self, rate: Optional[Number] = None) -> Decimal:
        return self.compute_subtotal() + self.compute_tax(rate)

    def quote(self, rate: Optional[Number] = None) -> OrderTotals:
        """Totals rounded to cents; ``total`` is the sum of the rounded parts."""
        rate = self.tax_rate if rate is None else validate_tax_rate(rate)
        subtotal = money(self.compute_subtotal())
        tax = money(self.compute_subtotal() * rate)
        return OrderTotals(subtotal=subtotal, tax=tax, total=subtotal + tax, tax_rate=rate)

    # -------------------------------------------------------------------------
    # Snapshot & serialization
    # -------------------------------------------------------------------------

    def snapshot_lines(
        self, preferences: Optional[Mapping[str, Mapping[str, Any]]] = None
    ) -> list[dict[str, Any]]:
        """Line items frozen for an order; independent of later menu edits."""
        preferences = preferences or {}
        snapshot = []
        for line in self._lines:
            customizations = []
            for group_name, names in line.selections:
                group = line.item.group(group_name)
                customizations.append({
                    "customization_id": group.id,
                    "customization_name": group.name,
                    "selected_options": [
                        {"name": name, "price": str(group.option(name).price)} for name in names
                    ],
                })
            snapshot.append({
                "menu_item_id": line.item.id,
                "name": line.item.name,
                "price": str(line.item.price),
                "quantity": line.quantity,
                "category": line.item.category,
                "description": line.item.description,
                "original_allergens": sorted(line.item.allergens),
                "selected_customizations": customizations,
                "allergen_preferences": dict(preferences.get(line.line_id, {})),
                "line_total": str(money(line.line_total)),
            })
        return snapshot

    def to_dict(self) -> dict[str, Any]:
        return {
            "tax_rate": str(self.tax_rate),
            "lines": [
                {
                    "line_id": line.line_id,
                    "menu_item_id": line.item.id,
                    "quantity": line.quantity,
                    "selections": {group: list(names) for group, names in line.selections},
                }
                for line in self._lines
            ],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], catalog: MenuCatalog) -> "Cart":
        """
        Rebuild a cart from its serialized form.

        Prices always come from ``catalog``; anything price-like in ``data``
        is ignored.
        """
        cart = cls(catalog, tax_rate=data.get("tax_rate", DEFAULT_TAX_RATE))
        for raw in data.get("lines", []):
            try:
                quantity = int(raw.get("quantity", 1))
            except (TypeError, ValueError):
                raise ValidationFailed("quantity must be a positive integer", field="quantity")
            if quantity <= 0:
                raise ValidationFailed("quantity must be a positive integer", field="quantity")
            line = cart.add_item(raw["menu_item_id"], raw.get("selections"))
            line.quantity += quantity - 1
            if raw.get("line_id") and line.quantity == quantity:
                line.line_id = str(raw["line_id"])
        return cart
