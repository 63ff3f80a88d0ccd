"""PG Manager: payment lifecycle and dues reconciliation for paying-guest accommodations."""

__version__ = "0.1.0"
