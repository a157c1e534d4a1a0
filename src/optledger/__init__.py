"""
OptLedger - Option Position Ledger

Lot consumption and consolidation engine for option-trading positions.
"""

from importlib.metadata import version

try:
    __version__ = version("optledger")
except Exception:
    __version__ = "0.0.0.dev"  # Fallback for development


__all__ = [
    "__version__",
]
