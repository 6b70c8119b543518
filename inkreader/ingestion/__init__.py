"""Capture ingestion: HTTP API, job creation and image prefetch."""
