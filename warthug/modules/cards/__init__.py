"""Cards Module: card upgrades and card views."""

from warthug.modules.cards.service import CardService

__all__ = ["CardService"]
