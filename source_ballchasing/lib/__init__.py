"""Shared helpers: logging, JSON, timestamps."""
