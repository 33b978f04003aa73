"""Error kinds raised at component boundaries."""

from __future__ import annotations


class CashReconError(Exception):
    """Base error for reconciliation engine failures."""


class CatalogUnavailableError(CashReconError):
    """Remote catalog could not be fetched or parsed."""


class TransientNetworkError(CashReconError):
    """A remote call failed: network, non-2xx status, or unparseable body."""


class PersistenceCorruptionError(CashReconError):
    """Local storage could not be read or decoded."""


class ValidationGapError(CashReconError):
    """Required input (route or date) is missing for the requested operation."""
