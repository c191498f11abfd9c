"""Warden: phone OTP verification and IP reconciliation service."""

__version__ = "0.1.0"
