"""
Result Parser / Validator

Turns the free-text output of a vision model into an AnalysisResult.
Parsing is best-effort: a response with no recognizable structure still
yields a valid result (default score, empty finding lists). Scores are
always clamped into the 0-10 range, whatever the model reported.
"""

import json
import logging
import re
import uuid
from typing import Any, Optional

from pydantic import ValidationError

from .models import AnalysisContext, AnalysisResult, Finding, Recommendation, Scores


logger = logging.getLogger(__name__)

DEFAULT_SCORE = 5.0

_NUMBER = r"(-?\d+(?:\.\d+)?)"

_OVERALL_SCORE = re.compile(
    rf"(?:overall(?:\s+ux)?|quality)\s+score\s*[:\-]?\s*\**\s*{_NUMBER}\s*/\s*10", re.I
)
_GENERIC_SCORE = re.compile(rf"\bscore\b[^\d\n-]{{0,20}}{_NUMBER}\s*/\s*10", re.I)

_DIMENSION_LABELS = {
    "usability": r"usability",
    "accessibility": r"accessibility",
    "visual_design": r"visual(?:\s+design)?",
    "performance": r"performance",
}

_SECTIONS = {
    "strengths": r"strengths",
    "critical": r"critical\s+issues",
    "major": r"major\s+issues",
    "minor": r"minor\s+issues",
    "recommendations": r"(?:specific\s+)?recommendations",
}

_ANY_HEADING = re.compile(
    r"^[ \t]*(?:#{1,6}\s|\*\*|__)|^[^\w\n]*(?:%s)[ \t]*(?:[:*(#].*)?$" % "|".join(_SECTIONS.values()),
    re.I | re.M
)
_BULLET = re.compile(r"^\s*(?:[-*•+]|\d+[.)])\s+(.*)$")
_PLACEHOLDER = re.compile(r"^(?:\[.*\]|none(?:\s+\w+)?|n/?a|nothing(?:\s+\w+)?)\.?$", re.I)

_FIX_PATTERNS = [
    re.compile(r"\b(?:fix|solution|recommendation)\s*:\s*([^.]+)", re.I),
    re.compile(r"\brecommend(?:ed)?\s+([^.]+)", re.I),
    re.compile(r"([^.]*\bshould\b[^.]*)", re.I),
]

_IMPACT_BY_SEVERITY = {
    "critical": "Blocks user task completion or causes significant frustration",
    "major": "Makes the interface difficult or unpleasant to use",
    "minor": "Small improvement opportunity that would enhance the experience",
}

_CATEGORY_KEYWORDS = [
    ("accessibility", ("contrast", "accessib", "wcag", "alt text", "screen reader", "aria", "keyboard")),
    ("mobile-optimization", ("mobile", "touch", "responsive", "tap target")),
    ("performance", ("performance", "loading", "speed", "slow")),
    ("visual-design", ("visual", "design", "color", "colour", "typography", "font", "spacing")),
]


def clamp_score(value: float) -> float:
    """Clamp a model-reported score into [0, 10]"""
    return max(0.0, min(10.0, float(value)))


class ResponseParser:
    """
    Builds AnalysisResult records from raw model text.

    Two strategies are tried in order:
    1. A JSON payload carrying "overall_score" (or "overallScore"), either
       bare or in a fenced code block
    2. Prose scanning: score markers, section headings and bullet lists

    Example:
        parser = ResponseParser()
        result = parser.parse(text, context=context, model="gpt-4o", provider="openai")
    """

    def parse(
        self,
        raw_text: str,
        *,
        context: AnalysisContext,
        model: str,
        provider: str,
        tokens_used: int = 0,
        analysis_time: int = 0,
        config: Optional[dict] = None
    ) -> AnalysisResult:
        """
        Parse raw model text into a validated result.

        Args:
            raw_text: Unmodified model output
            context: Context the analysis was run with
            model: Model that produced the text
            provider: Provider that produced the text
            tokens_used: Provider-reported token usage
            analysis_time: Elapsed wall-clock time in milliseconds
            config: Provider/model/types/depth summary to attach

        Returns:
            AnalysisResult with error=False
        """
        try:
            fields = self._parse_json_payload(raw_text)
        except (TypeError, AttributeError, ValueError, ValidationError) as e:
            logger.warning("Malformed JSON payload, falling back to prose parsing: %s", e)
            fields = None
        if fields is None:
            fields = self._parse_prose(raw_text)

        return AnalysisResult(
            id=f"uxlens-{uuid.uuid4().hex[:12]}",
            page=self._page_for(context),
            context=context,
            model=model,
            provider=provider,
            tokens_used=max(0, int(tokens_used)),
            analysis_time=max(0, int(analysis_time)),
            raw_analysis=raw_text,
            config=config or {},
            **fields
        )

    def error_result(
        self,
        message: str,
        *,
        context: AnalysisContext,
        model: str,
        provider: str,
        tokens_used: int = 0,
        analysis_time: int = 0,
        config: Optional[dict] = None
    ) -> AnalysisResult:
        """
        Build the degraded result returned when analysis failed.

        The result has a score of 0, error=True and exactly one critical
        issue titled "Analysis Failed" that carries the failure message.
        """
        return AnalysisResult(
            id=f"uxlens-error-{uuid.uuid4().hex[:12]}",
            page=self._page_for(context),
            context=context,
            overall_score=0,
            scores=Scores.uniform(0),
            critical_issues=[Finding(
                severity="critical",
                category="error-handling",
                title="Analysis Failed",
                description=f"uxlens analysis failed: {message}",
                impact="Could not analyze user experience",
                recommendation="Check configuration and try again"
            )],
            model=model,
            provider=provider,
            tokens_used=max(0, int(tokens_used)),
            analysis_time=max(0, int(analysis_time)),
            error=True,
            config=config or {}
        )

    # ------------------------------------------------------------------
    # Prose parsing
    # ------------------------------------------------------------------

    def _parse_prose(self, text: str) -> dict:
        overall = self._extract_overall_score(text)

        return {
            "overall_score": overall,
            "scores": Scores(**{
                dimension: self._extract_dimension_score(text, label, overall)
                for dimension, label in _DIMENSION_LABELS.items()
            }),
            "strengths": self._extract_list_items(text, "strengths"),
            "critical_issues": self._extract_findings(text, "critical"),
            "major_issues": self._extract_findings(text, "major"),
            "minor_issues": self._extract_findings(text, "minor"),
            "recommendations": [
                self._build_recommendation(item)
                for item in self._extract_list_items(text, "recommendations")
            ],
        }

    def _extract_overall_score(self, text: str) -> float:
        match = _OVERALL_SCORE.search(text) or _GENERIC_SCORE.search(text)
        if not match:
            return DEFAULT_SCORE

        score = float(match.group(1))
        if not 0 <= score <= 10:
            logger.warning("Model reported overall score %s outside 0-10, clamping", score)
        return clamp_score(score)

    def _extract_dimension_score(self, text: str, label: str, default: float) -> float:
        pattern = rf"\b{label}\b(?:\s+score)?\s*[:\-]?\s*\**\s*{_NUMBER}\s*/\s*10"
        match = re.search(pattern, text, re.I)
        return clamp_score(float(match.group(1))) if match else default

    def _extract_list_items(self, text: str, section: str) -> list[str]:
        """Bullet or numbered items under a section heading, in order"""
        heading = re.compile(
            rf"^[^\w\n]*{_SECTIONS[section]}[ \t]*(?:[:*(#].*)?$", re.I | re.M
        )
        match = heading.search(text)
        if not match:
            return []

        body = text[match.end():]
        next_heading = _ANY_HEADING.search(body)
        if next_heading:
            body = body[:next_heading.start()]

        items: list[str] = []
        for line in body.splitlines():
            bullet = _BULLET.match(line)
            if bullet:
                items.append(bullet.group(1).strip())
            elif line.strip() and items:
                items[-1] = f"{items[-1]} {line.strip()}"

        return [item for item in items if item and not _PLACEHOLDER.match(item)]

    def _extract_findings(self, text: str, severity: str) -> list[Finding]:
        return [
            self._build_finding(item, severity)
            for item in self._extract_list_items(text, severity)
        ]

    def _build_finding(self, text: str, severity: str, **overrides: Any) -> Finding:
        fields = {
            "severity": severity,
            "category": self._categorize(text),
            "title": self._title(text),
            "description": text,
            "impact": _IMPACT_BY_SEVERITY[severity],
            "recommendation": self._extract_fix(text),
        }
        fields.update({k: v for k, v in overrides.items() if v})
        return Finding(**fields)

    def _build_recommendation(self, text: str) -> Recommendation:
        lower = text.lower()

        if any(word in lower for word in ("css", "html", "javascript", "code")):
            rec_type = "code"
        elif any(word in lower for word in ("content", "copy", "text")):
            rec_type = "content"
        elif any(word in lower for word in ("process", "workflow", "team")):
            rec_type = "process"
        else:
            rec_type = "design"

        if any(word in lower for word in ("critical", "conversion", "accessibility")):
            impact = "high"
        elif any(word in lower for word in ("major", "usability")):
            impact = "medium"
        else:
            impact = "low"

        if any(word in lower for word in ("simple", "quick", "css")):
            effort = "low"
        elif any(word in lower for word in ("redesign", "refactor", "complex")):
            effort = "high"
        else:
            effort = "medium"

        code = re.search(r"```[\s\S]*?```", text)
        implement = re.search(r"\bimplement\s*:\s*([^.]+)", text, re.I)
        if code:
            implementation = code.group(0)
        elif implement:
            implementation = implement.group(1).strip()
        else:
            implementation = text

        return Recommendation(
            type=rec_type,
            title=self._title(text),
            description=text,
            implementation=implementation,
            impact=impact,
            effort=effort
        )

    def _categorize(self, text: str) -> str:
        lower = text.lower()
        for category, keywords in _CATEGORY_KEYWORDS:
            if any(keyword in lower for keyword in keywords):
                return category
        return "usability"

    def _title(self, text: str) -> str:
        """First sentence, shortened to 50 characters"""
        first = re.split(r"(?<=[.!?])\s", text.strip(), maxsplit=1)[0]
        first = first.replace("**", "").replace("__", "").strip().rstrip(".")
        if len(first) > 50:
            return first[:47] + "..."
        return first or "Untitled finding"

    def _extract_fix(self, text: str) -> Optional[str]:
        for pattern in _FIX_PATTERNS:
            match = pattern.search(text)
            if match:
                return match.group(1).strip()
        return None

    # ------------------------------------------------------------------
    # JSON payloads
    # ------------------------------------------------------------------

    def _parse_json_payload(self, text: str) -> Optional[dict]:
        """
        Read a structured JSON response, if the model produced one.

        Returns:
            Result fields, or None when there is no usable JSON object
        """
        # Try to extract JSON from markdown code blocks
        if "```json" in text:
            start = text.find("```json") + 7
            end = text.find("```", start)
            json_text = text[start:end].strip()
        elif "{" in text and "}" in text:
            json_text = text[text.find("{"):text.rfind("}") + 1]
        else:
            return None

        try:
            data = json.loads(json_text)
        except json.JSONDecodeError:
            return None

        if not isinstance(data, dict):
            return None
        raw_overall = data.get("overall_score", data.get("overallScore"))
        if not isinstance(raw_overall, (int, float)) or isinstance(raw_overall, bool):
            return None

        overall = clamp_score(raw_overall)
        raw_scores = data.get("scores") if isinstance(data.get("scores"), dict) else {}

        def dimension(*keys: str) -> float:
            for key in keys:
                value = raw_scores.get(key)
                if isinstance(value, (int, float)) and not isinstance(value, bool):
                    return clamp_score(value)
            return overall

        return {
            "overall_score": overall,
            "scores": Scores(
                usability=dimension("usability"),
                accessibility=dimension("accessibility"),
                visual_design=dimension("visual_design", "visualDesign"),
                performance=dimension("performance"),
            ),
            "strengths": [s for s in map(_json_text, _json_list(data, "strengths")) if s],
            "critical_issues": self._json_findings(data, "critical"),
            "major_issues": self._json_findings(data, "major"),
            "minor_issues": self._json_findings(data, "minor"),
            "recommendations": self._json_recommendations(data),
        }

    def _json_findings(self, data: dict, severity: str) -> list[Finding]:
        findings = []
        for item in _json_list(data, f"{severity}_issues", f"{severity}Issues"):
            if isinstance(item, dict):
                title = _json_text(item.get("title"))
                description = _json_text(item.get("description")) or title
                if not description:
                    continue
                findings.append(self._build_finding(
                    description,
                    severity,
                    title=title,
                    category=_json_text(item.get("category")),
                    recommendation=_json_text(item.get("recommendation")) or _json_text(item.get("fix")),
                ))
            else:
                text = _json_text(item)
                if text:
                    findings.append(self._build_finding(text, severity))
        return findings

    def _json_recommendations(self, data: dict) -> list[Recommendation]:
        recommendations = []
        for item in _json_list(data, "recommendations"):
            if isinstance(item, dict):
                text = _json_text(item.get("description")) or _json_text(item.get("title"))
            else:
                text = _json_text(item)
            if text:
                recommendations.append(self._build_recommendation(text))
        return recommendations

    @staticmethod
    def _page_for(context: AnalysisContext) -> str:
        return context.page_url or context.stage or "unknown"


def _json_list(data: dict, *keys: str) -> list:
    """First list value under any of keys; scalars and objects are ignored"""
    for key in keys:
        value = data.get(key)
        if isinstance(value, list):
            return value
        if value is not None:
            logger.debug("Ignoring non-list JSON field %s", key)
    return []


def _json_text(value: Any) -> Optional[str]:
    """Stripped text for strings and numbers, None for anything else"""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (str, int, float)):
        return str(value).strip() or None
    return None
