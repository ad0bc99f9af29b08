"""Fetch AI-generated interview questions and store them without duplicates."""

__version__ = "1.0.0"
