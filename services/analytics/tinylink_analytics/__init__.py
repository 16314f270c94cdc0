"""Tinylink analytics service: click ingestion and per-link statistics."""
