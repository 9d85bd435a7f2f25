"""
Menu Spreadsheet Adapter

Turns uploaded CSV / XLSX / JSON files into raw menu records for the bulk
importer, builds the upload template, and exports a restaurant's menu to
an XLSX file guarded by a file lock so concurrent exports never interleave.
"""

import io
import json
import logging
import zipfile
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable

import pandas as pd
from filelock import FileLock, Timeout

from tableside.core.config import get_settings
from tableside.core.errors import ValidationFailed

logger = logging.getLogger(__name__)

MENU_COLUMNS = [
    "name",
    "description",
    "price",
    "category",
    "available",
    "allergens",
    "allergen_notes",
    "dietary_info",
    "is_vegetarian",
    "is_spicy",
    "preparation_time",
    "calories",
    "image",
    "customizations",
]

LIST_COLUMNS = ("allergens", "dietary_info")
BOOL_COLUMNS = ("available", "is_vegetarian", "is_spicy")
TRUE_VALUES = {"true", "yes", "y", "1"}
FALSE_VALUES = {"false", "no", "n", "0"}

TEMPLATE_ROWS = [
    {
        "name": "Margherita Pizza",
        "description": "Fresh mozzarella, tomato sauce, basil",
        "price": "12.99",
        "category": "pizza",
        "available": "true",
        "allergens": "gluten, dairy",
        "allergen_notes": "",
        "dietary_info": "vegetarian",
        "is_vegetarian": "true",
        "is_spicy": "false",
        "preparation_time": "15",
        "calories": "850",
        "image": "",
        "customizations": json.dumps([
            {
                "name": "Crust Type",
                "type": "single",
                "required": True,
                "options": [{"name": "Thin", "price": 0}, {"name": "Thick", "price": 1.5}],
            }
        ]),
    },
    {
        "name": "Caesar Salad",
        "description": "Romaine, parmesan, croutons, caesar dressing",
        "price": "8.50",
        "category": "salads",
        "available": "true",
        "allergens": "dairy, eggs, gluten",
        "allergen_notes": "Dressing contains anchovies",
        "dietary_info": "",
        "is_vegetarian": "false",
        "is_spicy": "false",
        "preparation_time": "5",
        "calories": "420",
        "image": "",
        "customizations": "",
    },
]


# =============================================================================
# PARSING
# =============================================================================

def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return bool(pd.isna(value))


def _parse_bool(value: Any) -> Any:
    text = str(value).strip().lower()
    if text in TRUE_VALUES:
        return True
    if text in FALSE_VALUES:
        return False
    return value


def _clean_cell(column: str, value: Any) -> Any:
    if column in LIST_COLUMNS:
        return [part.strip() for part in str(value).split(",") if part.strip()]
    if column in BOOL_COLUMNS:
        return _parse_bool(value)
    if column == "customizations" and isinstance(value, str):
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            # Left as a string; the importer reports it against the row
            return value
    return value.strip() if isinstance(value, str) else value


def records_from_frame(df: pd.DataFrame) -> list[dict]:
    """One raw record per row; blank cells are dropped so defaults apply."""
    df = df.rename(columns=lambda c: str(c).strip().lower())
    records = []
    for row in df.to_dict("records"):
        records.append({
            column: _clean_cell(column, value)
            for column, value in row.items()
            if not _is_missing(value)
        })
    return records


def parse_upload(filename: str, content: bytes) -> list[Any]:
    """
    Parse an uploaded menu file into raw records.

    Raises:
        ValidationFailed: unsupported extension or unreadable file
    """
    suffix = Path(filename or "").suffix.lower()

    if suffix == ".json":
        try:
            data = json.loads(content)
        except (json.JSONDecodeError, UnicodeDecodeError):
            raise ValidationFailed("File is not valid JSON", field="file")
        if isinstance(data, dict):
            data = data.get("items", data.get("menu"))
        if not isinstance(data, list):
            raise ValidationFailed("JSON upload must be a list of menu items", field="file")
        return data

    try:
        if suffix == ".csv":
            df = pd.read_csv(io.BytesIO(content), dtype=str, keep_default_na=False)
        elif suffix == ".xlsx":
            df = pd.read_excel(io.BytesIO(content), dtype=str, engine="openpyxl")
        else:
            raise ValidationFailed(
                "Unsupported file type; upload a .csv, .xlsx or .json file", field="file"
            )
    except (ValueError, pd.errors.ParserError, zipfile.BadZipFile) as e:
        logger.warning(f"Could not read menu upload {filename}: {e}")
        raise ValidationFailed(f"Could not read {suffix.lstrip('.').upper()} file", field="file")

    return records_from_frame(df)


# =============================================================================
# TEMPLATE
# =============================================================================

def template_frame() -> pd.DataFrame:
    return pd.DataFrame(TEMPLATE_ROWS, columns=MENU_COLUMNS)


def template_csv() -> str:
    return template_frame().to_csv(index=False)


def template_workbook() -> bytes:
    buffer = io.BytesIO()
    template_frame().to_excel(buffer, index=False, sheet_name="menu", engine="openpyxl")
    return buffer.getvalue()


# =============================================================================
# EXPORT
# =============================================================================

def menu_item_row(item: Any) -> dict[str, Any]:
    """Flatten a menu item into one spreadsheet row."""
    return {
        "name": item.name,
        "description": item.description,
        "price": str(item.price),
        "category": item.category,
        "available": bool(item.available),
        "allergens": ", ".join(item.allergens or []),
        "allergen_notes": item.allergen_notes or "",
        "dietary_info": ", ".join(item.dietary_info or []),
        "is_vegetarian": bool(item.is_vegetarian),
        "is_spicy": bool(item.is_spicy),
        "preparation_time": item.preparation_time,
        "calories": item.calories,
        "image": item.image or "",
        "customizations": json.dumps(item.customizations) if item.customizations else "",
    }


def export_path(restaurant_id: str) -> Path:
    return Path(get_settings().data_directory) / f"menu_{restaurant_id}.xlsx"


def export_menu(restaurant_id: str, rows: Iterable[dict[str, Any]]) -> dict[str, Any]:
    """Write the restaurant's menu to XLSX under a file lock."""
    settings = get_settings()
    path = export_path(restaurant_id)
    path.parent.mkdir(parents=True, exist_ok=True)

    result = {
        "success": False,
        "message": "",
        "restaurant_id": restaurant_id,
        "path": str(path),
        "exported_at": None,
    }

    try:
        with FileLock(f"{path}.lock", timeout=settings.export_lock_timeout):
            logger.debug(f"Lock acquired for menu export {restaurant_id}")

            df = pd.DataFrame(list(rows), columns=MENU_COLUMNS)
            df.to_excel(str(path), index=False, sheet_name="menu", engine="openpyxl")

            export_time = datetime.now().isoformat()
            result.update(
                success=True,
                message=f"{len(df)} menu items exported",
                exported_at=export_time,
            )
            logger.info(f"Menu for restaurant {restaurant_id} exported to {path}")

    except Timeout:
        result["message"] = f"Lock timeout ({settings.export_lock_timeout}s)"
        logger.error(f"Lock timeout exporting menu for {restaurant_id}")

    except OSError as e:
        result["message"] = str(e)
        logger.exception(f"Error exporting menu for {restaurant_id}")

    return result
