# src/shared/__init__.py
"""
Общий код HTTP-слоя.

Модули:
- models: конверт ответа, пагинация, статус здоровья
"""

__all__: list[str] = []
