"""
Core utilities and configuration for Relayworks-AI.

This package provides core functionality including logging configuration,
error types, database setup, and other shared utilities.
"""

from relayworks_ai.core.logging_config import setup_logging

__all__ = ["setup_logging"]
