"""
Structured Issue Normalizer

Maps the findings of an AnalysisResult into flat StructuredIssue records
for automated triage. When a result carries no findings, the raw model text
is scanned for complaint phrases as a best-effort fallback. That heuristic
is isolated here so integrations with structured model output can bypass
it entirely.

normalize_issues() is a pure function and never raises.
"""

import logging
import re
from typing import Iterable, Optional, Union

from .models import AnalysisResult, Finding, StructuredIssue


logger = logging.getLogger(__name__)

# English complaint phrases that indicate a UI problem in free text.
# Callers can pass their own set; this list is not exhaustive.
DEFAULT_COMPLAINT_PATTERNS = (
    r"\b(?:low|poor|insufficient|inadequate)\s+(?:colou?r\s+)?contrast\b",
    r"\bcontrast\s+(?:ratio\s+)?(?:is\s+)?(?:too\s+low|insufficient|fails?)\b",
    r"\b(?:missing|no|empty|lacks?|without)\s+(?:an?\s+)?alt(?:ernative)?[\s-]+(?:text|attributes?)\b",
    r"\balt(?:ernative)?[\s-]+text\s+(?:is\s+)?(?:missing|absent|empty)\b",
    r"\bbroken\s+(?:links?|images?|layout)\b",
    r"\b(?:missing|no|invisible|weak)\s+focus\s+(?:indicators?|states?|outlines?|rings?)\b",
    r"\bnot\s+keyboard[\s-]+(?:accessible|navigable|operable)\b",
    r"\bkeyboard\s+trap\b",
    r"\b(?:small|tiny|undersized)\s+(?:touch|tap|click)\s+targets?\b",
    r"\b(?:missing|no)\s+(?:form\s+)?labels?\b",
    r"\bunlabell?ed\s+(?:inputs?|fields?|buttons?|icons?)\b",
    r"\b(?:truncated|cut[\s-]off|clipped)\s+(?:text|labels?|content)\b",
    r"\b(?:overlapping|overlaps)\b",
    r"\b(?:hard|difficult)\s+to\s+(?:read|find|see|tap|click)\b",
    r"\b(?:unclear|confusing|ambiguous)\s+(?:call[\s-]to[\s-]action|cta|navigation|labels?|copy)\b",
)

_WCAG = re.compile(
    r"\bWCAG\s*(?:2\.[0-2]\s+)?(?:SC\s*)?\d\.\d{1,2}\.\d{1,2}\b"
    r"|\b(?:SC|success\s+criterion)\s+\d\.\d{1,2}\.\d{1,2}\b",
    re.I
)

_BACKTICK_SELECTOR = re.compile(r"`([^`\n]{1,120})`")
_SELECTOR_LIKE = re.compile(r"^[#.\[\w][\w\s#.\[\]=\"'~^$*|:()>+,-]*$")
_BARE_SELECTOR = re.compile(
    r"(?<![\w.#/-])"
    r"(?:"
    r"#(?!(?:[0-9a-fA-F]{3,4}|[0-9a-fA-F]{6}|[0-9a-fA-F]{8})(?![\w-]))[A-Za-z][\w-]*"
    r"|\.[A-Za-z][\w-]*[A-Za-z0-9_]"
    r"|\[(?:[a-z][\w-]*[~|^$*]?=[^\]\s]+|(?:aria|data)-[\w-]+|role|alt|disabled|hidden)\]"
    r")"
    r"(?:[.#][A-Za-z][\w-]*)*"
)

_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+|\n+")

_DEFAULT_RECOMMENDATION = {
    "critical": "Fix before release; this blocks users from completing their task.",
    "high": "Address in the next iteration; this noticeably degrades the experience.",
    "medium": "Review the reported area and correct the problem.",
    "low": "Consider polishing when convenient.",
}


def normalize_issues(
    result: AnalysisResult,
    page_url: Optional[str] = None,
    *,
    patterns: Optional[Iterable[Union[str, re.Pattern]]] = None
) -> list[StructuredIssue]:
    """
    Derive structured issues from an analysis result.

    Severity follows the list a finding came from:
    - critical_issues -> "critical"
    - major_issues -> "high"
    - minor_issues -> "medium" when accessibility-related or WCAG-tagged,
      otherwise "low"

    CSS selectors and WCAG criteria cited in a finding are lifted verbatim
    into ``selector`` and ``wcag``.

    When the result has no findings, sentences of the raw model text that
    match a complaint pattern each become a "medium" issue whose description
    is the matched sentence.

    Args:
        result: Analysis result to normalize
        page_url: Page the issues belong to (defaults to result.page)
        patterns: Complaint regexes for the fallback scan
                  (defaults to DEFAULT_COMPLAINT_PATTERNS)

    Returns:
        Structured issues, possibly empty. Error results always yield [].

    Example:
        issues = normalize_issues(result, "https://shop.example.com/cart")
        blocking = [i for i in issues if i.severity == "critical"]
    """
    if result.error:
        return []

    url = page_url or result.page

    findings = result.all_findings
    if findings:
        return [_from_finding(finding, url) for finding in findings]

    return _scan_raw_text(result.raw_analysis, url, patterns)


def extract_wcag(text: str) -> Optional[str]:
    """First WCAG success criterion reference in text, verbatim"""
    match = _WCAG.search(text or "")
    return match.group(0).strip() if match else None


def extract_selector(text: str) -> Optional[str]:
    """
    First CSS-selector-like reference in text, verbatim.

    Backticked selectors win over bare ones. Hex colours (#fff, #1a2b3c)
    and ordinary sentence punctuation are not treated as selectors.
    """
    if not text:
        return None

    for match in _BACKTICK_SELECTOR.finditer(text):
        candidate = match.group(1).strip()
        if _SELECTOR_LIKE.match(candidate) and _BARE_SELECTOR.search(candidate):
            return candidate

    match = _BARE_SELECTOR.search(text)
    return match.group(0) if match else None


def _from_finding(finding: Finding, page_url: Optional[str]) -> StructuredIssue:
    text = f"{finding.title}. {finding.description}"
    wcag = extract_wcag(text)
    severity = _severity_for(finding, wcag)

    return StructuredIssue(
        selector=extract_selector(finding.description),
        wcag=wcag,
        severity=severity,
        category=finding.category,
        title=finding.title,
        recommendation=finding.recommendation or _DEFAULT_RECOMMENDATION[severity],
        description=finding.description,
        page_url=page_url
    )


def _severity_for(finding: Finding, wcag: Optional[str]) -> str:
    if finding.severity == "critical":
        return "critical"
    if finding.severity == "major":
        return "high"
    if finding.category == "accessibility" or wcag:
        return "medium"
    return "low"


def _scan_raw_text(
    text: str,
    page_url: Optional[str],
    patterns: Optional[Iterable[Union[str, re.Pattern]]]
) -> list[StructuredIssue]:
    if not text or not text.strip():
        return []

    compiled = _compile_patterns(patterns)
    if not compiled:
        return []

    issues: list[StructuredIssue] = []
    seen: set[str] = set()
    for sentence in _SENTENCE_SPLIT.split(text):
        excerpt = sentence.strip().strip("-*• ").strip()
        if not excerpt or excerpt.lower() in seen:
            continue
        if not any(pattern.search(excerpt) for pattern in compiled):
            continue

        seen.add(excerpt.lower())
        issues.append(StructuredIssue(
            selector=extract_selector(excerpt),
            wcag=extract_wcag(excerpt),
            severity="medium",
            category="accessibility" if _is_accessibility(excerpt) else "usability",
            title=excerpt if len(excerpt) <= 50 else excerpt[:47] + "...",
            recommendation=_DEFAULT_RECOMMENDATION["medium"],
            description=excerpt,
            page_url=page_url
        ))

    if issues:
        logger.debug("Synthesized %d issue(s) from unstructured model text", len(issues))
    return issues


def _compile_patterns(
    patterns: Optional[Iterable[Union[str, re.Pattern]]]
) -> list[re.Pattern]:
    compiled = []
    for pattern in DEFAULT_COMPLAINT_PATTERNS if patterns is None else patterns:
        if isinstance(pattern, re.Pattern):
            compiled.append(pattern)
            continue
        try:
            compiled.append(re.compile(pattern, re.I))
        except re.error as e:
            logger.warning("Ignoring invalid complaint pattern %r: %s", pattern, e)
    return compiled


def _is_accessibility(text: str) -> bool:
    lower = text.lower()
    return any(
        keyword in lower
        for keyword in ("contrast", "alt text", "alt-text", "wcag", "keyboard", "focus", "label", "screen reader")
    )
