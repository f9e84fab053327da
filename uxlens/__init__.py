"""
uxlens - Contextual UX Analysis with Vision Models

Analyzes screenshots of web UIs with hosted or local vision models and turns
their free-text critique into scores, categorized findings and structured
issues, in the context of who is using the screen and what they are trying
to do.

Supports multiple vision providers:
- OpenRouter (any routed vision model)
- OpenAI GPT-4o
- Anthropic Claude
- Local LLMs (Ollama/LLaVA)
"""

from .analyzer import Analyzer
from .batch import BatchController, backoff_delay
from .capture import ScreenshotCapturer, load_screenshot
from .config import load_config
from .errors import (
    AnalysisTimeout,
    ArityMismatch,
    ConfigurationError,
    InvalidContext,
    InvalidInput,
    ProviderError,
    RetryExhausted,
    UXLensError,
)
from .models import (
    AnalysisContext,
    AnalysisResult,
    BatchItem,
    BatchOptions,
    BatchRun,
    LensConfig,
    ScreenshotData,
    StructuredIssue,
    UserContext,
    UserPersona,
)
from .normalizer import normalize_issues
from .reporters import ConsoleReporter, JsonlReporter

__version__ = "0.1.0"
__all__ = [
    "Analyzer",
    "BatchController",
    "backoff_delay",
    "ScreenshotCapturer",
    "load_screenshot",
    "load_config",
    "normalize_issues",
    "JsonlReporter",
    "ConsoleReporter",
    "AnalysisContext",
    "AnalysisResult",
    "BatchItem",
    "BatchOptions",
    "BatchRun",
    "LensConfig",
    "ScreenshotData",
    "StructuredIssue",
    "UserContext",
    "UserPersona",
    "UXLensError",
    "ConfigurationError",
    "InvalidInput",
    "InvalidContext",
    "ArityMismatch",
    "ProviderError",
    "AnalysisTimeout",
    "RetryExhausted",
]
