"""Ingestion cycle and background enrichment jobs."""
