# src/services/booking_api/__init__.py
"""
Booking API: HTTP-слой над сервисами бронирования и водителей.
Приложение: src.services.booking_api.app:app
"""
