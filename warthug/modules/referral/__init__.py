"""Referral Module: claim-based referral payouts and referral views."""

from warthug.modules.referral.service import ReferralService

__all__ = ["ReferralService"]
