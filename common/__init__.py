"""Shared settings and database access."""
