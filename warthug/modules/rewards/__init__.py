"""
Rewards Module
==============

Daily streak claims, auto-mine sessions, the starter bonus and the weekly
referral-rank reward.
"""

from warthug.modules.rewards.service import RewardsService

__all__ = ["RewardsService"]
