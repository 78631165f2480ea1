"""Cache warming utilities for :mod:`perdiem_rates`."""

from __future__ import annotations

from typing import Any

__all__ = ["seed_rates"]


def __getattr__(name: str) -> Any:
    """Lazily expose seed helpers to avoid import-time side effects."""

    if name == "seed_rates":
        from perdiem_rates.seeds.populate_rates import seed_rates as _seed_rates

        return _seed_rates
    raise AttributeError(f"module 'perdiem_rates.seeds' has no attribute {name}")
