"""Offline-resilient daily cash reconciliation for field sales routes."""

__version__ = "0.1.0"
