"""Collision monitor loop tests: gating, cooldowns, failures and lifecycle."""

from __future__ import annotations

import asyncio

import pytest

from libs.core.application.collision_monitor import CollisionMonitor, MonitorConfig
from libs.core.application.gating import AlwaysClassify
from libs.core.application.response_parser import DEFAULT_ALERT_TEXT
from libs.core.domain.entities import (
    ClassificationResult,
    CycleOutcome,
    MonitorState,
    Severity,
)
from tests.fakes import (
    FRAME_A,
    FRAME_B,
    HangingClassifier,
    ScriptedClassifier,
    critical,
    safe,
    warning,
)

pytestmark = pytest.mark.asyncio


async def _settle(monitor) -> None:
    """Let the ticker fire its immediate round and wait for it to finish."""
    await asyncio.sleep(0)
    await monitor.wait_idle()


async def test_enable_runs_first_round_immediately(monitor_factory, sink):
    classifier = ScriptedClassifier(critical())
    monitor = monitor_factory(classifier)

    await monitor.enable()
    await _settle(monitor)

    assert len(classifier.calls) == 1
    assert sink.calls == [("I see a person at 5 feet", Severity.CRITICAL)]
    assert monitor.state is MonitorState.IDLE
    await monitor.close()


async def test_disable_resets_history(monitor_factory):
    monitor = monitor_factory(ScriptedClassifier(critical()))
    await monitor.enable()
    await _settle(monitor)
    assert monitor.cooldown_entries == 1
    assert monitor.has_previous_snapshot

    await monitor.disable()

    status = monitor.status()
    assert status.state is MonitorState.DISABLED
    assert status.last_alert is None
    assert monitor.cooldown_entries == 0
    assert not monitor.has_previous_snapshot


async def test_reenable_starts_without_history(monitor_factory, sink):
    classifier = ScriptedClassifier(critical())
    monitor = monitor_factory(classifier)
    await monitor.enable()
    await _settle(monitor)
    await monitor.disable()

    await monitor.enable()
    await _settle(monitor)

    # Same frame, same alert, no time passed: still a first check with
    # an empty cooldown table.
    assert len(classifier.calls) == 2
    assert len(sink.calls) == 2
    await monitor.close()


async def test_reenable_cancels_previous_timer(monitor_factory):
    monitor = monitor_factory(ScriptedClassifier(safe()))
    await monitor.enable()
    first_ticker = monitor._ticker

    await monitor.enable()
    await asyncio.sleep(0)

    assert first_ticker is not monitor._ticker
    assert first_ticker.cancelled()
    await monitor.close()


async def test_periodic_rounds_stop_after_disable(monitor_factory):
    classifier = ScriptedClassifier(critical())
    monitor = monitor_factory(classifier, check_interval_sec=0.01)

    await monitor.enable()
    await asyncio.sleep(0.1)
    await monitor.disable()
    await monitor.wait_idle()
    calls_at_disable = len(classifier.calls)
    await asyncio.sleep(0.05)

    assert calls_at_disable > 1
    assert len(classifier.calls) == calls_at_disable
    await monitor.close()


async def test_cycle_is_noop_when_disabled(monitor_factory):
    classifier = ScriptedClassifier(critical())
    monitor = monitor_factory(classifier)

    outcome = await monitor.force_check()

    assert outcome is CycleOutcome.SKIPPED_DISABLED
    assert classifier.calls == []


async def test_static_safe_scene_is_not_reclassified(monitor_factory, sink):
    classifier = ScriptedClassifier(safe())
    monitor = monitor_factory(classifier)
    await monitor.enable()
    await _settle(monitor)

    outcome = await monitor.force_check()

    assert outcome is CycleOutcome.GATED
    assert len(classifier.calls) == 1
    assert sink.calls == []
    await monitor.close()


async def test_large_change_is_reclassified(monitor_factory, frames):
    classifier = ScriptedClassifier(safe())
    monitor = monitor_factory(classifier)
    await monitor.enable()
    await _settle(monitor)

    frames.frame = FRAME_B
    outcome = await monitor.force_check()

    assert outcome is CycleOutcome.CLASSIFIED
    assert monitor.status().last_frame_change == pytest.approx(100.0)
    assert len(classifier.calls) == 2
    await monitor.close()


@pytest.mark.parametrize("previous", [warning(), critical()])
async def test_risky_previous_verdict_forces_classification(
    monitor_factory, previous
):
    classifier = ScriptedClassifier(previous)
    monitor = monitor_factory(classifier)
    await monitor.enable()
    await _settle(monitor)

    outcome = await monitor.force_check()

    assert outcome is CycleOutcome.CLASSIFIED
    assert monitor.status().last_frame_change == 0.0
    assert len(classifier.calls) == 2
    await monitor.close()


async def test_gating_policy_is_pluggable(monitor_factory, frames, sink, clock):
    classifier = ScriptedClassifier(safe())
    monitor = CollisionMonitor(
        frame_source=frames,
        classifier=classifier,
        alert_sink=sink,
        config=MonitorConfig(check_interval_sec=3600.0),
        gating_policy=AlwaysClassify(),
        clock=clock,
    )
    await monitor.enable()
    await _settle(monitor)

    assert await monitor.force_check() is CycleOutcome.CLASSIFIED
    assert len(classifier.calls) == 2
    await monitor.close()


async def test_critical_alert_repeats_after_three_seconds(
    monitor_factory, sink, clock
):
    monitor = monitor_factory(ScriptedClassifier(critical()))
    await monitor.enable()
    await _settle(monitor)
    assert len(sink.calls) == 1

    clock.advance(1.0)
    assert await monitor.force_check() is CycleOutcome.CLASSIFIED
    assert len(sink.calls) == 1

    clock.advance(2.5)
    await monitor.force_check()
    assert sink.calls == [
        ("I see a person at 5 feet", Severity.CRITICAL),
        ("I see a person at 5 feet", Severity.CRITICAL),
    ]
    assert monitor.status().counters.alerts_suppressed == 1
    await monitor.close()


async def test_warning_alert_repeats_after_ten_seconds(
    monitor_factory, sink, clock
):
    monitor = monitor_factory(ScriptedClassifier(warning()))
    await monitor.enable()
    await _settle(monitor)

    clock.advance(9.9)
    await monitor.force_check()
    assert len(sink.calls) == 1

    clock.advance(0.6)
    await monitor.force_check()
    assert len(sink.calls) == 2
    await monitor.close()


async def test_safe_severity_with_risk_is_never_repeated(
    monitor_factory, sink, clock
):
    odd = ClassificationResult(has_risk=True, alert_text="Puddle", severity=Severity.SAFE)
    monitor = monitor_factory(ScriptedClassifier(odd))
    monitor._gating = AlwaysClassify()
    await monitor.enable()
    await _settle(monitor)

    clock.advance(10_000)
    await monitor.force_check()

    assert sink.calls == [("Puddle", Severity.SAFE)]
    await monitor.close()


async def test_distinct_texts_use_distinct_keys(monitor_factory, sink, clock):
    classifier = ScriptedClassifier(
        critical("I see a person at 5 feet"),
        critical("I see a bicycle approaching from the left"),
    )
    monitor = monitor_factory(classifier)
    await monitor.enable()
    await _settle(monitor)

    clock.advance(0.5)
    await monitor.force_check()

    assert [text for text, _ in sink.calls] == [
        "I see a person at 5 feet",
        "I see a bicycle approaching from the left",
    ]
    await monitor.close()


async def test_key_uses_thirty_character_prefix(monitor_factory, sink, clock):
    prefix = "I see a person at 5 feet ahead"
    classifier = ScriptedClassifier(
        critical(prefix + ", walking left"),
        critical(prefix + ", standing still"),
    )
    monitor = monitor_factory(classifier)
    await monitor.enable()
    await _settle(monitor)

    clock.advance(0.5)
    await monitor.force_check()

    assert len(sink.calls) == 1
    await monitor.close()


async def test_no_risk_never_reaches_sink(monitor_factory, sink):
    monitor = monitor_factory(ScriptedClassifier(safe()))
    await monitor.enable()
    await _settle(monitor)

    assert sink.calls == []
    assert monitor.status().last_alert.severity is Severity.SAFE
    await monitor.close()


async def test_no_frame_aborts_cycle(monitor_factory, frames):
    frames.frame = None
    classifier = ScriptedClassifier(critical())
    monitor = monitor_factory(classifier)
    await monitor.enable()
    await _settle(monitor)

    assert classifier.calls == []
    assert monitor.status().last_outcome is CycleOutcome.NO_FRAME
    assert not monitor.busy
    await monitor.close()


async def test_timeout_clears_last_verdict(monitor_factory, frames, sink):
    classifier = ScriptedClassifier(safe())
    monitor = monitor_factory(classifier, classify_timeout_sec=0.05)
    await monitor.enable()
    await _settle(monitor)

    hanging = HangingClassifier()
    monitor._classifier = hanging
    frames.frame = FRAME_B
    assert await monitor.force_check() is CycleOutcome.TIMEOUT
    assert monitor.status().last_alert is None
    assert not monitor.busy

    # Near-zero change after a safe verdict would normally be gated.
    monitor._classifier = classifier
    assert await monitor.force_check() is CycleOutcome.CLASSIFIED
    assert hanging.calls == 1
    assert len(classifier.calls) == 2
    assert sink.calls == []
    await monitor.close()


async def test_classifier_error_is_recoverable(monitor_factory):
    classifier = ScriptedClassifier(RuntimeError("503 UNAVAILABLE"), critical())
    monitor = monitor_factory(classifier)
    await monitor.enable()
    await _settle(monitor)

    assert monitor.status().last_outcome is CycleOutcome.FAILED
    assert monitor.status().last_alert is None
    assert not monitor.busy

    assert await monitor.force_check() is CycleOutcome.CLASSIFIED
    assert monitor.status().counters.failed == 1
    await monitor.close()


async def test_sink_failure_does_not_break_cycle(frames, clock):
    def broken_sink(alert_text, severity):
        raise RuntimeError("speech engine busy")

    monitor = CollisionMonitor(
        frame_source=frames,
        classifier=ScriptedClassifier(critical()),
        alert_sink=broken_sink,
        config=MonitorConfig(check_interval_sec=3600.0),
        clock=clock,
    )
    await monitor.enable()
    await _settle(monitor)

    assert monitor.status().last_outcome is CycleOutcome.CLASSIFIED
    assert monitor.status().counters.alerts_emitted == 1
    assert not monitor.busy
    await monitor.close()


async def test_unstructured_clear_reply_is_safe(monitor_factory, sink):
    classifier = ScriptedClassifier("The hallway ahead is clear and empty.")
    monitor = monitor_factory(classifier)
    await monitor.enable()
    await _settle(monitor)

    last = monitor.status().last_alert
    assert last.severity is Severity.SAFE
    assert last.has_risk is False
    assert sink.calls == []
    await monitor.close()


async def test_malformed_mapping_fails_toward_caution(monitor_factory, sink):
    classifier = ScriptedClassifier({"alertText": "Something is there", "severity": "??"})
    monitor = monitor_factory(classifier)
    await monitor.enable()
    await _settle(monitor)

    assert sink.calls == [("Something is there", Severity.WARNING)]
    await monitor.close()


async def test_mapping_without_text_speaks_default_alert(monitor_factory, sink):
    classifier = ScriptedClassifier({"severity": "critical", "hasRisk": True})
    monitor = monitor_factory(classifier)
    await monitor.enable()
    await _settle(monitor)

    assert sink.calls == [(DEFAULT_ALERT_TEXT[Severity.CRITICAL], Severity.CRITICAL)]
    await monitor.close()


async def test_force_check_is_noop_while_busy(monitor_factory):
    classifier = ScriptedClassifier(critical())
    classifier.gate = asyncio.Event()
    monitor = monitor_factory(classifier)
    await monitor.enable()
    await asyncio.sleep(0)
    await asyncio.sleep(0)

    assert monitor.state is MonitorState.BUSY
    assert await monitor.force_check() is CycleOutcome.SKIPPED_BUSY

    classifier.gate.set()
    await monitor.wait_idle()
    assert len(classifier.calls) == 1
    assert not monitor.busy
    await monitor.close()


async def test_result_after_disable_is_discarded(monitor_factory, sink):
    classifier = ScriptedClassifier(critical())
    classifier.gate = asyncio.Event()
    monitor = monitor_factory(classifier)
    await monitor.enable()
    await asyncio.sleep(0)
    await asyncio.sleep(0)

    await monitor.disable()
    classifier.gate.set()
    await monitor.wait_idle()

    assert monitor.status().last_outcome is CycleOutcome.STALE
    assert monitor.status().last_alert is None
    assert monitor.cooldown_entries == 0
    assert sink.calls == []
    assert not monitor.busy


async def test_debug_hook_sees_classified_frames_only(frames, sink, clock):
    seen: list[str] = []
    monitor = CollisionMonitor(
        frame_source=frames,
        classifier=ScriptedClassifier(safe()),
        alert_sink=sink,
        config=MonitorConfig(check_interval_sec=3600.0),
        clock=clock,
        debug_hook=seen.append,
    )
    await monitor.enable()
    await _settle(monitor)
    await monitor.force_check()

    assert seen == [FRAME_A]
    await monitor.close()
