"""Render pipeline and background worker."""
