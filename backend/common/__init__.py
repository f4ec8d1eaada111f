"""Shared helpers used by both the Django backend and the driver client."""
