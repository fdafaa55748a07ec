"""
FreshCast - Exceptions
=======================

Exception hierarchy raised by the pipeline stages. The orchestrator turns
these into a tagged ForecastOutput instead of letting them reach the caller.
"""

from typing import Any, Dict, Optional


class FreshcastError(Exception):
    """Base class for all FreshCast errors"""

    def __init__(self, message: str, stage: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.stage = stage
        self.details = details or {}


class InsufficientDataError(FreshcastError):
    """Not enough history to produce a supported forecast"""


class ComputationError(FreshcastError):
    """A numeric stage produced an unusable result"""


class WeatherServiceError(FreshcastError):
    """Live weather lookup failed or returned an unusable payload"""


class InvalidInputError(FreshcastError, ValueError):
    """Caller supplied arguments outside the accepted domain"""
