"""Shared utilities: exceptions and logging setup."""
