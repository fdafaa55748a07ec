"""
FreshCast Utilities
===================
Cross-cutting helpers shared by all pipeline modules.
"""

from .logger import get_logger, set_level, LogContext

__all__ = ['get_logger', 'set_level', 'LogContext']
