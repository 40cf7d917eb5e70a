"""Reconciliation engine."""
