# This project was developed with assistance from AI tools.
"""Cooperative approvals and ledger API."""

__version__ = "0.1.0"
