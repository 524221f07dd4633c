# src/services/__init__.py
"""
HTTP-сервисы приложения.

Сервисы:
- booking_api: бронирования, водители, расчёт стоимости
"""

__all__: list[str] = []
