"""Pydantic models for synced and overlay records, and parse helpers."""
