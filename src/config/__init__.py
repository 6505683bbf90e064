"""
Application configuration using Pydantic settings.

Configuration comes from environment variables with sensible defaults.
SNOWFLAKE_MOCK_MODE swaps the database for an in-memory store.
"""

from .settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]

