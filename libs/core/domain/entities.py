from dataclasses import dataclass
from enum import Enum
from typing import Optional


class Severity(str, Enum):
    """Urgency of a detected hazard."""

    CRITICAL = "critical"
    WARNING = "warning"
    SAFE = "safe"

    @property
    def urgency(self) -> int:
        return _URGENCY[self]

    @classmethod
    def parse(cls, value: object) -> Optional["Severity"]:
        if isinstance(value, Severity):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


_URGENCY = {Severity.SAFE: 0, Severity.WARNING: 1, Severity.CRITICAL: 2}


class MonitorState(str, Enum):
    """Lifecycle state of a collision monitor."""

    DISABLED = "disabled"
    IDLE = "idle"
    BUSY = "busy"


class CycleOutcome(str, Enum):
    """How a single monitor cycle ended."""

    SKIPPED_BUSY = "skipped_busy"
    SKIPPED_DISABLED = "skipped_disabled"
    NO_FRAME = "no_frame"
    GATED = "gated"
    TIMEOUT = "timeout"
    FAILED = "failed"
    STALE = "stale"
    CLASSIFIED = "classified"


@dataclass
class FrameSnapshot:
    """Encoded still image captured from the frame source."""

    image: str
    captured_at: float


@dataclass
class ClassificationResult:
    """Normalized vision classifier verdict."""

    has_risk: bool
    alert_text: str
    severity: Severity


@dataclass
class CollisionAlert:
    """Outcome of a completed classification."""

    has_risk: bool
    alert_text: str
    severity: Severity
    timestamp: float


@dataclass
class MonitorCounters:
    """Running totals kept for observability."""

    cycles: int = 0
    skipped: int = 0
    gated: int = 0
    classified: int = 0
    failed: int = 0
    alerts_emitted: int = 0
    alerts_suppressed: int = 0


@dataclass
class MonitorStatus:
    """Read-only snapshot an owner can poll."""

    state: MonitorState
    enabled: bool
    busy: bool
    last_alert: Optional[CollisionAlert]
    last_outcome: Optional[CycleOutcome]
    last_frame_change: Optional[float]
    counters: MonitorCounters
