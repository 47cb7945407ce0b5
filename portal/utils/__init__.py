"""Shared helpers: currency parsing, API errors, password hashing."""
