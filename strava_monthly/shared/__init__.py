"""Helpers shared across features."""
