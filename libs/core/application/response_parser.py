"""Normalization of vision classifier output into a severity verdict."""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping

from libs.core.application.contracts import RawClassification
from libs.core.domain.entities import ClassificationResult, Severity

logger = logging.getLogger(__name__)

MIN_ALERT_LINE_LEN = 10

_SEVERITY_LINE = re.compile(r"SEVERITY:\s*(critical|warning|safe)", re.IGNORECASE)
_ALERT_LINE = re.compile(r"ALERT:\s*(.+?)(?:\n|$)", re.IGNORECASE)

# Negated hazard phrases must not trip the risk tiers below.
_NEGATED_HAZARD = re.compile(
    r"\bno\s+(?:\w+\s+){0,2}?"
    r"(?:obstacles?|danger|hazards?|people|persons?|vehicles?|objects?|walls?|furniture)\b",
    re.IGNORECASE,
)

_CRITICAL_PATTERNS = [
    re.compile(r"\bcritical\b", re.IGNORECASE),
    re.compile(r"\bdanger", re.IGNORECASE),
    re.compile(r"\bimmediate", re.IGNORECASE),
    re.compile(r"\bapproaching\b", re.IGNORECASE),
    re.compile(r"\b(?:person|people|vehicle|car|bike)\b.*?\d+\s*(?:feet|ft|foot)\b", re.IGNORECASE),
    re.compile(r"\b(?:person|people)\b.*?\b(?:ahead|path)\b", re.IGNORECASE),
]
_WARNING_PATTERNS = [
    re.compile(r"\bwarning\b", re.IGNORECASE),
    re.compile(r"\bcaution\b", re.IGNORECASE),
    re.compile(r"\bobstacles?\b", re.IGNORECASE),
    re.compile(r"\bparked\b", re.IGNORECASE),
    re.compile(r"\bwalls?\b", re.IGNORECASE),
    re.compile(r"\bfurniture\b", re.IGNORECASE),
    re.compile(r"\d+\s*(?:feet|ft|foot)\b", re.IGNORECASE),
]
# Negated all-clear phrases must not trip the safe tier.
_NEGATED_SAFE = re.compile(
    r"\b(?:not|never|isn't|aren't)\s+(?:\w+\s+)?(?:clear|safe)\b",
    re.IGNORECASE,
)

_SAFE_PATTERNS = [
    re.compile(r"\bsafe\b", re.IGNORECASE),
    re.compile(r"\bclear\b", re.IGNORECASE),
    re.compile(r"\bempty\b", re.IGNORECASE),
    _NEGATED_HAZARD,
    re.compile(r"\bpath\b.*?\bclear\b", re.IGNORECASE),
]

DEFAULT_ALERT_TEXT = {
    Severity.CRITICAL: "Stop, hazard directly ahead",
    Severity.WARNING: "Caution, obstacle ahead",
    Severity.SAFE: "Path is clear",
}


def normalize_classification(raw: RawClassification) -> ClassificationResult:
    """Coerce any classifier reply into a ClassificationResult."""
    if (
        isinstance(raw, ClassificationResult)
        and isinstance(raw.severity, Severity)
        and raw.alert_text
    ):
        return raw
    if isinstance(raw, ClassificationResult):
        return _normalize_mapping(
            {
                "hasRisk": raw.has_risk,
                "alertText": raw.alert_text,
                "severity": raw.severity,
            }
        )
    if isinstance(raw, Mapping):
        return _normalize_mapping(raw)
    if isinstance(raw, str):
        return parse_response_text(raw)

    logger.warning("Unexpected classifier reply type %s", type(raw).__name__)
    return parse_response_text(str(raw))


def parse_response_text(text: str) -> ClassificationResult:
    """Parse `SEVERITY:`/`ALERT:` lines, falling back to keyword heuristics."""
    severity_match = _SEVERITY_LINE.search(text)
    alert_match = _ALERT_LINE.search(text)

    if severity_match and alert_match:
        severity = Severity(severity_match.group(1).lower())
        alert_text = alert_match.group(1).strip()
    else:
        logger.debug("Structured format not found, analyzing text")
        severity = classify_free_text(text)
        alert_text = (
            alert_match.group(1).strip() if alert_match else first_substantive_line(text)
        )

    return ClassificationResult(
        has_risk=severity is not Severity.SAFE,
        alert_text=alert_text or DEFAULT_ALERT_TEXT[severity],
        severity=severity,
    )


def classify_free_text(text: str) -> Severity:
    """Derive severity from unstructured text, defaulting to WARNING."""
    risk_text = _NEGATED_HAZARD.sub(" ", text)
    if _matches_any(_CRITICAL_PATTERNS, risk_text):
        return Severity.CRITICAL
    if _matches_any(_WARNING_PATTERNS, risk_text):
        return Severity.WARNING
    if _matches_any(_SAFE_PATTERNS, _NEGATED_SAFE.sub(" ", text)):
        return Severity.SAFE
    return Severity.WARNING


def first_substantive_line(text: str) -> str:
    for line in text.splitlines():
        if len(line.strip()) > MIN_ALERT_LINE_LEN:
            return line.strip()
    return text.strip()


def _normalize_mapping(raw: Mapping[str, object]) -> ClassificationResult:
    alert_text = _first_str(raw, "alertText", "alert_text", "alert", "text")
    severity = Severity.parse(raw.get("severity"))

    if severity is None:
        logger.debug("Classifier reply has no usable severity: %r", raw)
        severity = classify_free_text(alert_text if alert_text else str(raw))

    has_risk = raw.get("hasRisk", raw.get("has_risk"))
    if not isinstance(has_risk, bool):
        has_risk = severity is not Severity.SAFE

    return ClassificationResult(
        has_risk=has_risk,
        alert_text=alert_text or DEFAULT_ALERT_TEXT[severity],
        severity=severity,
    )


def _first_str(raw: Mapping[str, object], *keys: str) -> str | None:
    for key in keys:
        value = raw.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def _matches_any(patterns: list[re.Pattern[str]], text: str) -> bool:
    return any(pattern.search(text) for pattern in patterns)
