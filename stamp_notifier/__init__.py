"""Stamp Notifier — announces allocated stamps from Airtable on Telegram."""

__version__ = "1.0.0"
