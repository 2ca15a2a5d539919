"""Shared helpers: outbound email."""
