"""Beet: an ultra-lightweight chat relay for hosted LLM endpoints."""

__version__ = "0.1.0"
