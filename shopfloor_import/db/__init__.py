"""Persistence layer (PostgreSQL and in-memory stores)."""
