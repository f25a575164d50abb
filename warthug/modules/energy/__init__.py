"""Energy Module: taps, refills and the two player upgrades."""

from warthug.modules.energy.service import EnergyService

__all__ = ["EnergyService"]
