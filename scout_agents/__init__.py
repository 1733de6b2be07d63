"""Scout: game research orchestration (plan, search, clean, pool)."""

__version__ = "0.1.0"
