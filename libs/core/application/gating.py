from dataclasses import dataclass

from libs.core.domain.entities import CollisionAlert, Severity

DEFAULT_CHANGE_THRESHOLD_PCT = 15.0


@dataclass
class ChangeThresholdGate:
    """Skip classification of a static scene already confirmed safe.

    Classification is skipped only when this is not the first check, the
    frame changed less than the threshold, and the last verdict was SAFE.
    Unknown or risky prior state always re-classifies.
    """

    threshold_pct: float = DEFAULT_CHANGE_THRESHOLD_PCT

    def should_classify(
        self,
        is_first_check: bool,
        frame_change: float,
        last_alert: CollisionAlert | None,
    ) -> bool:
        if is_first_check:
            return True
        if frame_change >= self.threshold_pct:
            return True
        return last_alert is None or last_alert.severity is not Severity.SAFE


@dataclass
class AlwaysClassify:
    """Gate that never skips; useful when every frame must be analyzed."""

    def should_classify(
        self,
        is_first_check: bool,
        frame_change: float,
        last_alert: CollisionAlert | None,
    ) -> bool:
        return True
