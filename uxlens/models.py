"""
Data Models for uxlens

Type-safe Pydantic models for analysis inputs, results, structured issues,
batch runs and configuration.
"""

from datetime import datetime, timezone
from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


AnalysisType = Literal[
    "usability",
    "accessibility",
    "visual-design",
    "performance",
    "mobile-optimization",
    "conversion-optimization",
    "brand-consistency",
    "error-handling",
]

AnalysisDepth = Literal["quick", "standard", "comprehensive"]
ProviderName = Literal["openrouter", "openai", "anthropic", "local"]
FindingSeverity = Literal["critical", "major", "minor"]
IssueSeverity = Literal["low", "medium", "high", "critical"]

SEVERITY_ORDER = {"low": 0, "medium": 1, "high": 2, "critical": 3}


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Analysis context
# ---------------------------------------------------------------------------


class UserPersona(BaseModel):
    """
    A reusable description of the person using the interface.

    Attributes:
        name: Display name of the persona
        expertise: Familiarity with this kind of interface
        device: Primary device class
        urgency: How pressed for time the persona usually is
        goals: What the persona is trying to achieve
        pain_points: Known frustrations (optional)
        context: Free-text description of the usage situation (optional)
    """

    name: str
    expertise: Literal["novice", "intermediate", "expert"] = "intermediate"
    device: Literal["mobile-primary", "desktop-primary", "mixed"] = "mixed"
    urgency: Literal["low", "medium", "high"] = "medium"
    goals: list[str] = Field(default_factory=list)
    pain_points: list[str] = Field(default_factory=list)
    context: Optional[str] = None


class UserContext(BaseModel):
    """Who is looking at the screen and under what circumstances"""

    persona: Optional[Union[str, UserPersona]] = None
    device_context: str = "desktop"
    expertise: Optional[Literal["novice", "intermediate", "expert"]] = None
    time_constraint: Optional[Literal["none", "limited", "urgent"]] = None
    trust_level: Optional[Literal["low", "medium", "high"]] = None
    business_goals: list[str] = Field(default_factory=list)


class BusinessContext(BaseModel):
    industry: str
    conversion_goal: Optional[str] = None
    competitive_advantage: Optional[str] = None
    brand_personality: Optional[str] = None
    target_audience: Optional[str] = None


class TechnicalContext(BaseModel):
    framework: Optional[str] = None
    design_system: Optional[str] = None
    device_support: Optional[Literal["mobile-first", "desktop-first", "responsive"]] = None
    performance_target: Optional[str] = None
    accessibility_target: Optional[Literal["WCAG-A", "WCAG-AA", "WCAG-AAA"]] = None


class AnalysisContext(BaseModel):
    """
    Everything the vision model should know about the screen it is shown.

    ``stage`` and ``user_intent`` are required for a meaningful analysis;
    the Analyzer rejects blank values with InvalidContext before any
    provider is called.

    Attributes:
        stage: Where in the user journey this screen sits (e.g. "checkout")
        user_intent: What the user is trying to do on this screen
        user_context: Persona, device and expertise of the user
        critical_elements: Elements that must be evaluated, in priority order
        business_context: Industry and conversion goals (optional)
        technical_context: Framework and design system details (optional)
        custom_prompt: Extra instructions appended to the prompt (optional)
        page_url: URL of the analyzed page (optional)
    """

    stage: str
    user_intent: str
    user_context: UserContext = Field(default_factory=UserContext)
    critical_elements: list[str] = Field(default_factory=list)
    business_context: Optional[BusinessContext] = None
    technical_context: Optional[TechnicalContext] = None
    custom_prompt: Optional[str] = None
    page_url: Optional[str] = None


# ---------------------------------------------------------------------------
# Screenshots
# ---------------------------------------------------------------------------


class ScreenshotMetadata(BaseModel):
    width: int = Field(default=0, ge=0)
    height: int = Field(default=0, ge=0)
    device_pixel_ratio: float = Field(default=1.0, gt=0)
    timestamp: str = Field(default_factory=_utcnow)


class ScreenshotData(BaseModel):
    """
    An in-memory screenshot handed to the pipeline by a capture collaborator.

    Attributes:
        buffer: Raw image bytes (PNG, JPEG, WebP or GIF)
        path: File path or other identifier of the image source
        metadata: Dimensions, pixel ratio and capture time
    """

    buffer: bytes
    path: str = ""
    metadata: ScreenshotMetadata = Field(default_factory=ScreenshotMetadata)

    @property
    def media_type(self) -> str:
        """Image MIME type sniffed from the buffer's magic bytes"""
        head = self.buffer[:12]
        if head.startswith(b"\xff\xd8\xff"):
            return "image/jpeg"
        if head.startswith(b"GIF8"):
            return "image/gif"
        if head[:4] == b"RIFF" and head[8:12] == b"WEBP":
            return "image/webp"
        return "image/png"


# ---------------------------------------------------------------------------
# Analysis results
# ---------------------------------------------------------------------------


class Finding(BaseModel):
    """
    A single problem extracted from the model's analysis.

    Attributes:
        severity: Section the finding was reported under
        category: Analysis dimension the finding belongs to
        title: Short headline (first sentence, max 50 characters)
        description: Full finding text as reported by the model
        impact: How the problem affects users at this severity
        recommendation: Suggested fix, when the model gave one
    """

    model_config = ConfigDict(frozen=True)

    severity: FindingSeverity
    category: str = "usability"
    title: str
    description: str
    impact: str = ""
    recommendation: Optional[str] = None


class Recommendation(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["code", "design", "content", "process"] = "design"
    title: str
    description: str
    implementation: str = ""
    impact: Literal["high", "medium", "low"] = "medium"
    effort: Literal["low", "medium", "high"] = "medium"


class Scores(BaseModel):
    """
    Per-dimension scores on the same 0-10 scale as the overall score.

    Dimensions the model did not score explicitly inherit the overall score.
    """

    model_config = ConfigDict(frozen=True)

    usability: float = Field(ge=0, le=10)
    accessibility: float = Field(ge=0, le=10)
    visual_design: float = Field(ge=0, le=10)
    performance: float = Field(ge=0, le=10)

    @classmethod
    def uniform(cls, value: float) -> "Scores":
        return cls(usability=value, accessibility=value, visual_design=value, performance=value)


class AnalysisResult(BaseModel):
    """
    Complete, immutable outcome of one analyze() call.

    Successful and failed analyses share this shape; a failed analysis has
    ``error=True``, an overall score of 0 and a single critical issue titled
    "Analysis Failed".

    Attributes:
        id: Unique result identifier
        timestamp: When the result was built (ISO 8601, UTC)
        page: Page URL, or the stage name when no URL is known
        context: The analysis context, echoed back
        overall_score: Overall UX score, clamped to 0-10
        scores: Per-dimension scores
        strengths: What works well
        critical_issues / major_issues / minor_issues: Findings by severity
        recommendations: Actionable improvements
        model: Model that produced the analysis
        tokens_used: Token usage reported by the provider
        analysis_time: Wall-clock time in milliseconds
        provider: Provider that produced the analysis
        raw_analysis: Unmodified model output
        error: True when the analysis failed
        config: Provider, model, analysis types and depth used
    """

    model_config = ConfigDict(frozen=True)

    id: str
    timestamp: str = Field(default_factory=_utcnow)
    page: str = "unknown"
    context: AnalysisContext
    overall_score: float = Field(ge=0, le=10)
    scores: Scores
    strengths: tuple[str, ...] = ()
    critical_issues: tuple[Finding, ...] = ()
    major_issues: tuple[Finding, ...] = ()
    minor_issues: tuple[Finding, ...] = ()
    recommendations: tuple[Recommendation, ...] = ()
    model: str = "unknown"
    tokens_used: int = Field(default=0, ge=0)
    analysis_time: int = Field(default=0, ge=0)
    provider: str = "unknown"
    raw_analysis: str = ""
    error: bool = False
    config: dict = Field(default_factory=dict)

    @property
    def all_findings(self) -> list[Finding]:
        return [*self.critical_issues, *self.major_issues, *self.minor_issues]

    def get_grade(self) -> str:
        """Get letter grade for overall score"""
        if self.overall_score >= 9:
            return "A"
        elif self.overall_score >= 7.5:
            return "B"
        elif self.overall_score >= 6:
            return "C"
        elif self.overall_score >= 4:
            return "D"
        else:
            return "F"

    def summary(self) -> str:
        """Generate a human-readable summary"""
        summary = f"Grade: {self.get_grade()} ({self.overall_score:g}/10)\n"
        summary += (
            f"Issues: {len(self.all_findings)} total "
            f"({len(self.critical_issues)} critical)\n"
        )

        if self.recommendations:
            summary += "\nTop recommendations:\n"
            for i, rec in enumerate(self.recommendations[:3], 1):
                summary += f"  {i}. {rec.title}\n"

        return summary


class StructuredIssue(BaseModel):
    """
    Flat, severity-tagged issue record suitable for automated triage.

    Attributes:
        selector: CSS selector the model referenced, if any
        wcag: WCAG success criterion the model referenced, if any
        severity: low, medium, high or critical
        category: Analysis dimension of the underlying finding
        title: Short headline
        recommendation: What to do about it
        description: Full finding text or matched excerpt
        page_url: Page the issue was found on
    """

    model_config = ConfigDict(frozen=True)

    selector: Optional[str] = None
    wcag: Optional[str] = None
    severity: IssueSeverity
    category: str = "usability"
    title: str = ""
    recommendation: str
    description: str
    page_url: Optional[str] = None


# ---------------------------------------------------------------------------
# Batch runs
# ---------------------------------------------------------------------------


class BatchItem(BaseModel):
    url: str
    context: Optional[AnalysisContext] = None
    timeout_ms: Optional[int] = Field(default=None, gt=0)


class BatchOptions(BaseModel):
    """
    Concurrency, retry and timeout policy for a batch run.

    Attributes:
        concurrency: Maximum number of items in flight (1-8)
        retry_max: Additional attempts allowed per item after the first
        retry_base_ms: Backoff before the first retry; doubles each retry
        jitter: Add a uniform random perturbation in [0, backoff]
        timeout_ms: Run-level time budget (optional)
        item_timeout_ms: Default per-attempt timeout (optional)
    """

    concurrency: int = Field(default=2, ge=1, le=8)
    retry_max: int = Field(default=2, ge=0)
    retry_base_ms: int = Field(default=500, ge=0)
    jitter: bool = True
    timeout_ms: Optional[int] = Field(default=None, gt=0)
    item_timeout_ms: Optional[int] = Field(default=None, gt=0)


class BatchItemOutcome(BaseModel):
    index: int
    url: str
    ok: bool
    attempts: int = 0
    result: Optional[AnalysisResult] = None
    structured_issues: list[StructuredIssue] = Field(default_factory=list)
    error: Optional[str] = None
    error_kind: Optional[Literal["timeout", "invalid", "exhausted"]] = None
    elapsed_ms: int = 0


class BatchRun(BaseModel):
    """
    Aggregate record of one batch execution.

    ``outcomes`` is always in input order, one entry per submitted item.
    """

    run_id: str
    started_at: str
    finished_at: str
    elapsed_ms: int = 0
    outcomes: list[BatchItemOutcome] = Field(default_factory=list)
    counts: dict[str, int] = Field(
        default_factory=lambda: {severity: 0 for severity in SEVERITY_ORDER}
    )
    succeeded: int = 0
    failed: int = 0


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class AIConfig(BaseModel):
    """
    Provider settings.

    Attributes:
        provider: Primary provider name
        api_key: Key for the primary provider (not needed for local)
        model: Model identifier; "vendor/model" ids are accepted
        fallback_model: Model consulted once when the primary fails
        fallback_api_key: Key for the fallback provider, if it differs
        base_url: Override for the provider endpoint
        max_tokens: Maximum response tokens
        temperature: Sampling temperature
        ollama_host: Ollama server URL for the local provider
    """

    provider: ProviderName = "openrouter"
    api_key: Optional[str] = None
    model: str = "openai/gpt-4o"
    fallback_model: Optional[str] = None
    fallback_api_key: Optional[str] = None
    base_url: Optional[str] = None
    max_tokens: int = Field(default=4000, gt=0)
    temperature: float = Field(default=0.1, ge=0, le=2)
    ollama_host: str = "http://localhost:11434"

    @field_validator("api_key", "fallback_api_key", "fallback_model", "base_url")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            return None
        return v


class AnalysisConfig(BaseModel):
    depth: AnalysisDepth = "standard"
    types: list[AnalysisType] = Field(
        default_factory=lambda: ["usability", "accessibility", "visual-design"]
    )


class LensConfig(BaseModel):
    """Top-level configuration passed explicitly to Analyzer and providers"""

    ai: AIConfig = Field(default_factory=AIConfig)
    analysis: AnalysisConfig = Field(default_factory=AnalysisConfig)
    personas: dict[str, UserPersona] = Field(default_factory=dict)
