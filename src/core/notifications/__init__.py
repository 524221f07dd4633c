# src/core/notifications/__init__.py
"""
Домен уведомлений водителей.
"""

from src.core.notifications.service import BookingSummary, DispatchSummary, NotificationDispatcher

__all__ = [
    "BookingSummary",
    "DispatchSummary",
    "NotificationDispatcher",
]
