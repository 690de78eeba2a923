"""Core utilities: exceptions and logging setup."""
