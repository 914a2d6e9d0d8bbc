"""Continuous collision detection loop.

One monitor owns its mutable state outright. Every transition goes through
``dispatch`` with a ``MonitorCommand``; the periodic ticker only posts TICK
commands. ``busy`` guards against overlapping classification rounds and is
cleared on every exit path of a cycle.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from enum import Enum

from libs.core.application.contracts import (
    AlertSink,
    EncodedImage,
    FrameSource,
    GatingPolicy,
    VisionClassifier,
)
from libs.core.application.cooldown import AlertCooldownTable, CooldownPolicy
from libs.core.application.frame_change import frame_difference
from libs.core.application.gating import DEFAULT_CHANGE_THRESHOLD_PCT, ChangeThresholdGate
from libs.core.application.response_parser import normalize_classification
from libs.core.domain.entities import (
    CollisionAlert,
    CycleOutcome,
    FrameSnapshot,
    MonitorCounters,
    MonitorState,
    MonitorStatus,
)

logger = logging.getLogger(__name__)

DEFAULT_CHECK_INTERVAL_SEC = 2.0
CLASSIFY_TIMEOUT_SEC = 10.0


class MonitorCommand(str, Enum):
    ENABLE = "enable"
    DISABLE = "disable"
    TICK = "tick"
    FORCE_CHECK = "force_check"


@dataclass
class MonitorConfig:
    """Timing and threshold settings for a collision monitor."""

    check_interval_sec: float = DEFAULT_CHECK_INTERVAL_SEC
    classify_timeout_sec: float = CLASSIFY_TIMEOUT_SEC
    change_threshold_pct: float = DEFAULT_CHANGE_THRESHOLD_PCT
    cooldown: CooldownPolicy = field(default_factory=CooldownPolicy)


@dataclass
class _MonitorRuntime:
    cooldowns: AlertCooldownTable
    enabled: bool = False
    busy: bool = False
    session: int = 0
    previous_snapshot: FrameSnapshot | None = None
    last_alert: CollisionAlert | None = None
    last_outcome: CycleOutcome | None = None
    last_frame_change: float | None = None
    counters: MonitorCounters = field(default_factory=MonitorCounters)


class CollisionMonitor:
    """Samples frames, classifies hazards and debounces alerts."""

    def __init__(
        self,
        frame_source: FrameSource,
        classifier: VisionClassifier,
        alert_sink: AlertSink,
        config: MonitorConfig | None = None,
        gating_policy: GatingPolicy | None = None,
        clock: Callable[[], float] = time.monotonic,
        debug_hook: Callable[[EncodedImage], object] | None = None,
    ) -> None:
        self._frames = frame_source
        self._classifier = classifier
        self._alert_sink = alert_sink
        self._config = config or MonitorConfig()
        self._gating = gating_policy or ChangeThresholdGate(
            threshold_pct=self._config.change_threshold_pct
        )
        self._clock = clock
        self._debug_hook = debug_hook
        self._state = _MonitorRuntime(
            cooldowns=AlertCooldownTable(policy=self._config.cooldown)
        )
        self._ticker: asyncio.Task[None] | None = None
        self._cycle_tasks: set[asyncio.Task[CycleOutcome]] = set()

    @property
    def config(self) -> MonitorConfig:
        return self._config

    @property
    def state(self) -> MonitorState:
        if not self._state.enabled:
            return MonitorState.DISABLED
        if self._state.busy:
            return MonitorState.BUSY
        return MonitorState.IDLE

    @property
    def busy(self) -> bool:
        return self._state.busy

    @property
    def enabled(self) -> bool:
        return self._state.enabled

    @property
    def cooldown_entries(self) -> int:
        return len(self._state.cooldowns)

    @property
    def has_previous_snapshot(self) -> bool:
        return self._state.previous_snapshot is not None

    def status(self) -> MonitorStatus:
        return MonitorStatus(
            state=self.state,
            enabled=self._state.enabled,
            busy=self._state.busy,
            last_alert=self._state.last_alert,
            last_outcome=self._state.last_outcome,
            last_frame_change=self._state.last_frame_change,
            counters=replace(self._state.counters),
        )

    async def dispatch(self, command: MonitorCommand) -> CycleOutcome | None:
        if command is MonitorCommand.ENABLE:
            self._enable()
            return None
        if command is MonitorCommand.DISABLE:
            self._disable()
            return None
        if command is MonitorCommand.TICK:
            self._spawn_cycle()
            return None
        return await self.run_cycle()

    async def enable(self) -> None:
        await self.dispatch(MonitorCommand.ENABLE)

    async def disable(self) -> None:
        await self.dispatch(MonitorCommand.DISABLE)

    async def force_check(self) -> CycleOutcome:
        return await self.run_cycle()

    async def wait_idle(self) -> None:
        """Wait until every timer-spawned cycle has finished."""
        while self._cycle_tasks:
            await asyncio.gather(*list(self._cycle_tasks), return_exceptions=True)

    async def close(self) -> None:
        ticker = self._ticker
        self._disable()
        if ticker is not None:
            try:
                await ticker
            except asyncio.CancelledError:
                pass
        await self.wait_idle()

    async def run_cycle(self) -> CycleOutcome:
        state = self._state
        if state.busy:
            logger.debug("Already processing, skipping check")
            return self._record_skip(CycleOutcome.SKIPPED_BUSY)
        if not state.enabled:
            logger.debug("Monitor disabled, skipping check")
            return self._record_skip(CycleOutcome.SKIPPED_DISABLED)

        state.busy = True
        state.counters.cycles += 1
        try:
            outcome = await self._run_busy_cycle(session=state.session)
        finally:
            state.busy = False
        state.last_outcome = outcome
        logger.debug("Check complete: %s", outcome.value)
        return outcome

    def _enable(self) -> None:
        self._cancel_ticker()
        state = self._state
        if not state.enabled:
            state.session += 1
        state.enabled = True
        self._ticker = asyncio.create_task(self._tick_forever())
        logger.info(
            "Starting collision detection (interval %.2fs)",
            self._config.check_interval_sec,
        )

    def _disable(self) -> None:
        self._cancel_ticker()
        state = self._state
        if state.enabled:
            state.session += 1
            logger.info("Stopping collision detection")
        state.enabled = False
        state.previous_snapshot = None
        state.last_alert = None
        state.cooldowns.clear()

    def _cancel_ticker(self) -> None:
        if self._ticker is not None and not self._ticker.done():
            self._ticker.cancel()
        self._ticker = None

    async def _tick_forever(self) -> None:
        while True:
            await self.dispatch(MonitorCommand.TICK)
            await asyncio.sleep(self._config.check_interval_sec)

    def _spawn_cycle(self) -> None:
        task = asyncio.create_task(self.run_cycle())
        self._cycle_tasks.add(task)
        task.add_done_callback(self._cycle_tasks.discard)

    def _record_skip(self, outcome: CycleOutcome) -> CycleOutcome:
        self._state.counters.skipped += 1
        return outcome

    async def _run_busy_cycle(self, session: int) -> CycleOutcome:
        state = self._state
        image = self._capture()
        if image is None:
            logger.debug("Failed to capture frame")
            return CycleOutcome.NO_FRAME

        previous = state.previous_snapshot
        is_first_check = previous is None
        frame_change = 0.0 if previous is None else frame_difference(previous.image, image)
        state.previous_snapshot = FrameSnapshot(image=image, captured_at=self._clock())
        state.last_frame_change = frame_change

        if not self._gating.should_classify(
            is_first_check=is_first_check,
            frame_change=frame_change,
            last_alert=state.last_alert,
        ):
            logger.debug(
                "Frame change too small (%.1f%%), skipping analysis", frame_change
            )
            state.counters.gated += 1
            return CycleOutcome.GATED

        logger.debug(
            "Analyzing frame (change: %.1f%%, first: %s)", frame_change, is_first_check
        )
        await self._run_debug_hook(image)

        try:
            raw = await asyncio.wait_for(
                self._classifier.classify(image),
                timeout=self._config.classify_timeout_sec,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Classification timed out after %.1fs", self._config.classify_timeout_sec
            )
            return self._fail(session, CycleOutcome.TIMEOUT)
        except Exception as error:
            logger.warning("Classification failed: %s", error)
            return self._fail(session, CycleOutcome.FAILED)

        if not self._is_current(session):
            logger.info("Discarding classification result from a stopped session")
            return CycleOutcome.STALE

        try:
            result = normalize_classification(raw)
        except Exception:
            logger.exception("Could not normalize classifier reply")
            return self._fail(session, CycleOutcome.FAILED)

        alert = CollisionAlert(
            has_risk=result.has_risk,
            alert_text=result.alert_text,
            severity=result.severity,
            timestamp=self._clock(),
        )
        state.last_alert = alert
        state.counters.classified += 1

        if alert.has_risk:
            self._maybe_emit(alert)
        else:
            logger.debug("No collision risk detected")
        return CycleOutcome.CLASSIFIED

    def _capture(self) -> EncodedImage | None:
        try:
            return self._frames.capture_frame()
        except Exception:
            logger.exception("Frame source raised during capture")
            return None

    async def _run_debug_hook(self, image: EncodedImage) -> None:
        if self._debug_hook is None:
            return
        try:
            await asyncio.to_thread(self._debug_hook, image)
        except Exception:
            logger.exception("Debug hook failed")

    def _is_current(self, session: int) -> bool:
        return self._state.enabled and self._state.session == session

    def _fail(self, session: int, outcome: CycleOutcome) -> CycleOutcome:
        self._state.counters.failed += 1
        if self._is_current(session):
            self._state.last_alert = None
        return outcome

    def _maybe_emit(self, alert: CollisionAlert) -> None:
        state = self._state
        policy = self._config.cooldown
        key = policy.key_for(alert.severity, alert.alert_text)
        now = self._clock()

        if not state.cooldowns.should_emit(key, alert.severity, now):
            state.counters.alerts_suppressed += 1
            logger.info("Alert suppressed (cooldown): %s", alert.alert_text)
            return

        state.cooldowns.record(key, now)
        state.counters.alerts_emitted += 1
        logger.info("%s: %s", alert.severity.value.upper(), alert.alert_text)
        try:
            self._alert_sink(alert.alert_text, alert.severity)
        except Exception:
            logger.exception("Alert sink failed")
