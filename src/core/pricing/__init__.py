# src/core/pricing/__init__.py
"""
Тарификация поездок.
"""

from src.core.pricing.calculator import FareBreakdown, FareCalculator, round_half_up

__all__ = [
    "FareBreakdown",
    "FareCalculator",
    "round_half_up",
]
