"""
Notification Service Abstract Base Class

Defines the interface for customer SMS notifications.
Supports both Mock (development) and Twilio (staging/production) implementations.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass
class NotificationResult:
    """Result from sending a notification."""
    success: bool
    message_id: Optional[str] = None
    error_message: Optional[str] = None
    provider: str = "unknown"


def order_number(order_id: str) -> str:
    """Short order number customers see: last 6 characters of the id."""
    return order_id[-6:].upper()


class BaseNotificationService(ABC):
    """Abstract base class for notification services."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name."""

    @abstractmethod
    async def send_sms(
        self,
        to_phone: str,
        message: str,
    ) -> NotificationResult:
        """Send an SMS message."""

    @abstractmethod
    async def health_check(self) -> bool:
        """Check service connectivity."""

    async def send_order_ready(self, order_id: str, customer_phone: str) -> NotificationResult:
        """Tell the customer their order is ready."""
        message = f"Your order #{order_number(order_id)} is ready for pickup!"
        return await self.send_sms(customer_phone, message)
