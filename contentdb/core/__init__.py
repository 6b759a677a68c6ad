"""
Core module - Configuration and cross-cutting concerns.

This module provides:
- config.py         : Environment-based configuration management
- logging_config.py : Centralized logging setup
- exceptions.py     : Error taxonomy shared by every layer
"""
from contentdb.core.config import get_settings, Settings, BackendKind, RebuildPolicy
from contentdb.core.logging_config import setup_logging, get_logger, LoggerMixin

__all__ = [
    "get_settings",
    "Settings",
    "BackendKind",
    "RebuildPolicy",
    "setup_logging",
    "get_logger",
    "LoggerMixin",
]
