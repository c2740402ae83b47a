"""Utility helpers for quote_booking."""
