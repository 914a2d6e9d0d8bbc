"""In-memory registry of collision monitor sessions and delivered alerts."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from uuid import uuid4

from libs.core.application.collision_monitor import CollisionMonitor, MonitorConfig
from libs.core.application.contracts import FrameSource, VisionClassifier
from libs.core.domain.entities import Severity
from libs.infra.debug_viewer import show_frame_if_enabled
from services.api_gateway.infrastructure.frame_sources import (
    DirectoryFrameSource,
    LatestFrameBuffer,
)

logger = logging.getLogger(__name__)


@dataclass
class DeliveredAlert:
    """Alert that reached the user-facing sink."""

    alert_id: str
    session_id: str
    alert_text: str
    severity: Severity
    delivered_at: str


class AlertLog:
    """Alert sink that records every delivered alert for polling clients."""

    def __init__(self, session_id: str) -> None:
        self._session_id = session_id
        self._lock = threading.Lock()
        self._alerts: list[DeliveredAlert] = []

    def __call__(self, alert_text: str, severity: Severity) -> None:
        alert = DeliveredAlert(
            alert_id=str(uuid4()),
            session_id=self._session_id,
            alert_text=alert_text,
            severity=severity,
            delivered_at=_utc_now_iso(),
        )
        with self._lock:
            self._alerts.append(alert)

    def list(self, severity: Severity | None = None) -> list[DeliveredAlert]:
        with self._lock:
            alerts = list(self._alerts)
        if severity is None:
            return alerts
        return [alert for alert in alerts if alert.severity is severity]


@dataclass
class MonitorSession:
    """One monitored camera feed."""

    session_id: str
    created_at: str
    monitor: CollisionMonitor
    alert_log: AlertLog
    frame_buffer: LatestFrameBuffer | None = None
    frames_dir: str | None = None


class SessionRegistry:
    """Creates monitors and tracks them by session id."""

    def __init__(
        self,
        classifier_factory: Callable[[], VisionClassifier],
        debug_hook: Callable[[str], object] | None = show_frame_if_enabled,
    ) -> None:
        self._classifier_factory = classifier_factory
        self._debug_hook = debug_hook
        self._lock = threading.Lock()
        self._sessions: dict[str, MonitorSession] = {}
        self.classifier: VisionClassifier | None = None

    def create(
        self,
        check_interval_sec: float,
        frames_dir: str | None = None,
    ) -> MonitorSession:
        session_id = str(uuid4())
        frame_buffer: LatestFrameBuffer | None = None
        frame_source: FrameSource
        if frames_dir:
            frame_source = DirectoryFrameSource.from_directory(frames_dir)
        else:
            frame_buffer = LatestFrameBuffer()
            frame_source = frame_buffer

        alert_log = AlertLog(session_id)
        monitor = CollisionMonitor(
            frame_source=frame_source,
            classifier=self._get_classifier(),
            alert_sink=alert_log,
            config=MonitorConfig(check_interval_sec=check_interval_sec),
            debug_hook=self._debug_hook,
        )
        session = MonitorSession(
            session_id=session_id,
            created_at=_utc_now_iso(),
            monitor=monitor,
            alert_log=alert_log,
            frame_buffer=frame_buffer,
            frames_dir=frames_dir,
        )
        with self._lock:
            self._sessions[session_id] = session
        logger.info("Created monitor session %s", session_id)
        return session

    def get(self, session_id: str) -> MonitorSession | None:
        with self._lock:
            return self._sessions.get(session_id)

    def list(self) -> list[MonitorSession]:
        with self._lock:
            return list(self._sessions.values())

    async def remove(self, session_id: str) -> bool:
        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        await session.monitor.close()
        logger.info("Removed monitor session %s", session_id)
        return True

    async def close_all(self) -> None:
        """Disable every monitor and forget its session."""
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        for session in sessions:
            await session.monitor.close()

    def _get_classifier(self) -> VisionClassifier:
        if self.classifier is None:
            self.classifier = self._classifier_factory()
        return self.classifier


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()
