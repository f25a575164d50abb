"""Persistence schema for the Warthug economy."""
