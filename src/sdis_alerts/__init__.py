"""Mailbox monitoring for SDIS UPS and radio-network alerts."""

__version__ = "0.1.0"
