"""Persistence and external data sources."""
