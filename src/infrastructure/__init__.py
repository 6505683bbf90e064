"""
Infrastructure layer - external service integrations.

Each subdirectory wraps an external dependency:
- snowflake: Database persistence for lessons, participants, and invoices

These wrappers translate between external formats and our domain models.
"""
