"""
Core module initialization.
Exports configuration, logging utilities and domain exceptions.
"""

from chatbot.core.config import get_settings, Settings, EnvironmentMode, setup_logging
from chatbot.core.exceptions import (
    OrderingError,
    InputValidationError,
    NotFoundError,
    MenuItemNotFoundError,
    OrderNotFoundError,
    StorageError,
    PaymentError,
)

__all__ = [
    "get_settings",
    "Settings",
    "EnvironmentMode",
    "setup_logging",
    "OrderingError",
    "InputValidationError",
    "NotFoundError",
    "MenuItemNotFoundError",
    "OrderNotFoundError",
    "StorageError",
    "PaymentError",
]
