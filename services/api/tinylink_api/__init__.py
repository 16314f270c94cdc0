"""Tinylink API service."""
