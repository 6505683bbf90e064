"""
Core business logic for lesson billing and financial reporting.

This module is framework-agnostic - it doesn't import FastAPI, Snowflake,
or any infrastructure concerns. This separation means we can test the
money rules in isolation and swap storage if needed.
"""
