"""Shared helpers used by the API and its launcher."""
