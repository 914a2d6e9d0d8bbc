from __future__ import annotations

from dataclasses import dataclass, field

from libs.core.domain.entities import Severity

CRITICAL_COOLDOWN_SEC = 3.0
WARNING_COOLDOWN_SEC = 10.0
ALERT_KEY_PREFIX_LEN = 30


@dataclass
class CooldownPolicy:
    """Minimum spacing between repeated alerts, by severity.

    A ``None`` cooldown means the key is never re-alerted once emitted.
    """

    critical_sec: float | None = CRITICAL_COOLDOWN_SEC
    warning_sec: float | None = WARNING_COOLDOWN_SEC
    safe_sec: float | None = None
    key_prefix_len: int = ALERT_KEY_PREFIX_LEN

    def window_for(self, severity: Severity) -> float | None:
        if severity is Severity.CRITICAL:
            return self.critical_sec
        if severity is Severity.WARNING:
            return self.warning_sec
        return self.safe_sec

    def key_for(self, severity: Severity, alert_text: str) -> str:
        return f"{severity.value}-{alert_text[: self.key_prefix_len]}"


@dataclass
class AlertCooldownTable:
    """Last emission time per alert key."""

    policy: CooldownPolicy = field(default_factory=CooldownPolicy)
    _last_emitted: dict[str, float] = field(default_factory=dict)

    def should_emit(self, key: str, severity: Severity, now: float) -> bool:
        last = self._last_emitted.get(key)
        if last is None:
            return True
        window = self.policy.window_for(severity)
        if window is None:
            return False
        return now - last > window

    def record(self, key: str, now: float) -> None:
        self._last_emitted[key] = now

    def clear(self) -> None:
        self._last_emitted.clear()

    def __len__(self) -> int:
        return len(self._last_emitted)
