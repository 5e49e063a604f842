"""Prompt text used when building provider requests."""

from .system import DEFAULT_SYSTEM_PROMPT  # noqa: F401
