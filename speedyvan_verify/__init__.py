"""Speedy Van phone verification and SMS notification API."""

__version__ = "0.1.0"
