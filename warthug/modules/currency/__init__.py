"""Currency Module: hourly passive income and hug-point conversion."""

from warthug.modules.currency.service import CurrencyService

__all__ = ["CurrencyService"]
