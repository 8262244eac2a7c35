# file: calltariff/__init__.py
"""
calltariff - telephone call rating.

This package matches dialed numbers against prefix and numbering-plan series
data to classify calls by destination and carrier, resolves the applicable
tariff through band, special-rate and circuit overrides, and computes billed
amounts.
"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.1.0"
