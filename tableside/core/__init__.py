"""
Core module initialization.
Exports configuration, logging utilities and the error taxonomy.
"""

from tableside.core.config import get_settings, Settings, EnvironmentMode
from tableside.core.errors import (
    NotFound,
    PaymentFailed,
    StateConflict,
    TablesideError,
    ValidationFailed,
)

__all__ = [
    "get_settings",
    "Settings",
    "EnvironmentMode",
    "TablesideError",
    "ValidationFailed",
    "NotFound",
    "StateConflict",
    "PaymentFailed",
]
