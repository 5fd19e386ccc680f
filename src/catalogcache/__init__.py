"""Local freshness cache and resource controllers for a product catalog origin."""

from __future__ import annotations

__version__ = "0.1.0"
