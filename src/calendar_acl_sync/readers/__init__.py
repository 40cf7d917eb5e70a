"""Roster readers and store client."""
