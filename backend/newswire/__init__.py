"""
Newswire - news ingestion pipeline.

Fetches articles from RSS feeds and news search APIs, normalizes and
deduplicates them, and keeps a shared article store up to date.
"""

__version__ = "0.1.0"
