"""
CoachLedger - lesson billing and income reporting for independent coaches.

This package contains the complete application:
- core: Framework-agnostic billing and reporting logic
- infrastructure: Database persistence
- api: FastAPI routes and dependencies
- config: Application configuration
"""

__version__ = "0.1.0"
