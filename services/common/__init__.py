"""Common utilities for services.

This package exposes shared helpers used across the service
implementations. The ``logging_utils`` module provides ``get_logger`` and
``configure_logging`` for consistent, optionally JSON, log output.
"""

from .logging_utils import JsonFormatter, configure_logging, get_logger

__all__ = ["JsonFormatter", "get_logger", "configure_logging"]
