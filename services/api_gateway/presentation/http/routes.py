from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from libs.core.domain.entities import CollisionAlert, MonitorStatus, Severity
from services.api_gateway.dependencies import get_session_registry
from services.api_gateway.infrastructure.session_store import (
    DeliveredAlert,
    MonitorSession,
)
from services.api_gateway.settings import get_settings

router = APIRouter()


class SessionCreateRequest(BaseModel):
    check_interval_sec: float | None = Field(default=None, gt=0.0)
    frames_dir: str | None = None


class FramePushRequest(BaseModel):
    image: str = Field(min_length=1)


@router.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/ready")
def ready() -> dict[str, str]:
    return {"status": "ready"}


@router.get("/version")
def version() -> dict[str, str]:
    return {"version": "0.1.0"}


@router.post("/v1/sessions")
def create_session(payload: SessionCreateRequest) -> dict[str, object]:
    registry = get_session_registry()
    interval = payload.check_interval_sec or get_settings().check_interval_sec
    try:
        session = registry.create(
            check_interval_sec=interval,
            frames_dir=payload.frames_dir,
        )
    except ValueError as error:
        raise HTTPException(status_code=400, detail=str(error)) from error
    return _session_to_dict(session)


@router.get("/v1/sessions/{session_id}")
def get_session(session_id: str) -> dict[str, object]:
    return _session_to_dict(_get_session_or_404(session_id))


@router.post("/v1/sessions/{session_id}/enable")
async def enable_session(session_id: str) -> dict[str, object]:
    session = _get_session_or_404(session_id)
    await session.monitor.enable()
    return _session_to_dict(session)


@router.post("/v1/sessions/{session_id}/disable")
async def disable_session(session_id: str) -> dict[str, object]:
    session = _get_session_or_404(session_id)
    await session.monitor.disable()
    return _session_to_dict(session)


@router.post("/v1/sessions/{session_id}/check")
async def force_check(session_id: str) -> dict[str, object]:
    session = _get_session_or_404(session_id)
    outcome = await session.monitor.force_check()
    result = _session_to_dict(session)
    result["outcome"] = outcome.value
    return result


@router.post("/v1/sessions/{session_id}/frames")
def push_frame(session_id: str, payload: FramePushRequest) -> dict[str, object]:
    session = _get_session_or_404(session_id)
    if session.frame_buffer is None:
        raise HTTPException(
            status_code=409,
            detail="Session replays frames from a directory",
        )
    session.frame_buffer.push(payload.image)
    return {
        "session_id": session_id,
        "accepted": True,
        "received_frames": session.frame_buffer.received_frames,
    }


@router.get("/v1/sessions/{session_id}/alerts")
def list_session_alerts(
    session_id: str,
    severity: Severity | None = None,
) -> list[dict[str, object]]:
    session = _get_session_or_404(session_id)
    return [_delivered_to_dict(alert) for alert in session.alert_log.list(severity)]


@router.delete("/v1/sessions/{session_id}")
async def delete_session(session_id: str) -> dict[str, object]:
    removed = await get_session_registry().remove(session_id)
    if not removed:
        raise HTTPException(status_code=404, detail="Session not found")
    return {"session_id": session_id, "removed": True}


def _get_session_or_404(session_id: str) -> MonitorSession:
    session = get_session_registry().get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return session


def _session_to_dict(session: MonitorSession) -> dict[str, object]:
    return {
        "session_id": session.session_id,
        "created_at": session.created_at,
        "source": "directory" if session.frames_dir else "push",
        "check_interval_sec": session.monitor.config.check_interval_sec,
        **_status_to_dict(session.monitor.status()),
    }


def _status_to_dict(status: MonitorStatus) -> dict[str, object]:
    counters = status.counters
    return {
        "state": status.state.value,
        "enabled": status.enabled,
        "busy": status.busy,
        "last_alert": _alert_to_dict(status.last_alert),
        "last_outcome": status.last_outcome.value if status.last_outcome else None,
        "last_frame_change": status.last_frame_change,
        "counters": {
            "cycles": counters.cycles,
            "skipped": counters.skipped,
            "gated": counters.gated,
            "classified": counters.classified,
            "failed": counters.failed,
            "alerts_emitted": counters.alerts_emitted,
            "alerts_suppressed": counters.alerts_suppressed,
        },
    }


def _alert_to_dict(alert: CollisionAlert | None) -> dict[str, object] | None:
    if alert is None:
        return None
    return {
        "has_risk": alert.has_risk,
        "alert_text": alert.alert_text,
        "severity": alert.severity.value,
        "timestamp": alert.timestamp,
    }


def _delivered_to_dict(alert: DeliveredAlert) -> dict[str, object]:
    return {
        "alert_id": alert.alert_id,
        "session_id": alert.session_id,
        "alert_text": alert.alert_text,
        "severity": alert.severity.value,
        "delivered_at": alert.delivered_at,
    }
