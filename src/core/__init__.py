# src/core/__init__.py
"""
Доменный слой (Core Domain).
Бизнес-логика бронирований, тарификации и поиска водителей.
"""
