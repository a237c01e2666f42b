"""Allowlisted, rate limited and cached proxy for finance data APIs."""

__version__ = "1.0.0"
