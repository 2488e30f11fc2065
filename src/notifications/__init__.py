"""Staff notification layer."""

from src.notifications.alerts import AlertNotifier, BuyerAlert, PaymentAlert
from src.notifications.channels import NotificationChannel
from src.notifications.telegram_channel import TelegramChannel

__all__ = [
    "AlertNotifier",
    "BuyerAlert",
    "NotificationChannel",
    "PaymentAlert",
    "TelegramChannel",
]
