"""Votes Module: vote events, ballots and results."""

from warthug.modules.votes.service import VoteService, vote_event_to_dict

__all__ = ["VoteService", "vote_event_to_dict"]
