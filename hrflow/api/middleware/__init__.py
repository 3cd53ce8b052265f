"""
API Middleware Module

Modules:
    - correlation: Request correlation ID middleware
    - error_handlers: Maps workflow errors to JSON error responses
"""

from .correlation import CorrelationIdMiddleware
from .error_handlers import register_error_handlers

__all__ = ["CorrelationIdMiddleware", "register_error_handlers"]
