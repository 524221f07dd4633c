# src/config/__init__.py
"""
Конфигурация сервиса бронирований.
"""

from src.config.loader import Settings, get_settings, settings

__all__ = ["Settings", "get_settings", "settings"]
