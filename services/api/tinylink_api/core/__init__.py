"""Core configuration, infrastructure and cross-cutting concerns."""
