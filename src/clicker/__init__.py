"""Automated click transactions against an SVM ledger program, one task per identity."""

__version__ = "0.1.0"
