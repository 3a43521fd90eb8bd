"""Shared helpers for hooksync tests."""
