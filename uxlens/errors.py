"""
Error Taxonomy

Exceptions raised by the analysis pipeline. Precondition and contract
violations raise; provider and network failures are absorbed by the
Analyzer and surface as error results instead.
"""

from typing import Optional


class UXLensError(Exception):
    """Base class for all uxlens errors"""


class ConfigurationError(UXLensError, ValueError):
    """Invalid or incomplete configuration detected at construction time"""


class InvalidInput(UXLensError, ValueError):
    """Screenshot data (or batch input) is unusable, e.g. an empty buffer"""


class InvalidContext(UXLensError, ValueError):
    """Analysis context is missing a required field (stage or user intent)"""


class ArityMismatch(UXLensError, ValueError):
    """Parallel input lists passed to analyze_multiple differ in length"""


class ProviderError(UXLensError, RuntimeError):
    """
    A vision provider call failed.

    Attributes:
        provider: Name of the provider that failed
        status: HTTP status code, or None for transport failures
        body: Response body text returned by the provider (may be empty)
    """

    def __init__(
        self,
        message: str,
        provider: str = "unknown",
        status: Optional[int] = None,
        body: str = ""
    ):
        super().__init__(message)
        self.provider = provider
        self.status = status
        self.body = body


class AnalysisTimeout(UXLensError, TimeoutError):
    """An analysis attempt exceeded its item or run time budget"""


class RetryExhausted(UXLensError, RuntimeError):
    """A batch item failed on every attempt it was allowed"""

    def __init__(self, message: str, attempts: int, last_error: Optional[BaseException] = None):
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error
