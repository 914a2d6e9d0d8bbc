from collections.abc import Mapping
from typing import Protocol, TypeAlias

from libs.core.domain.entities import ClassificationResult, CollisionAlert, Severity

EncodedImage: TypeAlias = str
RawClassification: TypeAlias = ClassificationResult | Mapping[str, object] | str


class FrameSource(Protocol):
    """Camera frame capture contract."""

    def capture_frame(self) -> EncodedImage | None: ...


class VisionClassifier(Protocol):
    """Vision-language hazard classification contract.

    Implementations may return a normalized result, a loosely structured
    mapping or the raw model text; the monitor normalizes all three.
    """

    async def classify(self, image: EncodedImage) -> RawClassification: ...


class AlertSink(Protocol):
    """User-facing alert delivery contract."""

    def __call__(self, alert_text: str, severity: Severity) -> None: ...


class GatingPolicy(Protocol):
    """Decides whether a cycle proceeds to classification."""

    def should_classify(
        self,
        is_first_check: bool,
        frame_change: float,
        last_alert: CollisionAlert | None,
    ) -> bool: ...
