"""Shared fixtures for collision monitor and API tests."""

from __future__ import annotations

import asyncio

import pytest
from fastapi.testclient import TestClient

from libs.core.application.collision_monitor import CollisionMonitor, MonitorConfig
from tests.fakes import FakeClock, FakeFrameSource, RecordingSink, ScriptedClassifier, critical


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def frames() -> FakeFrameSource:
    return FakeFrameSource()


@pytest.fixture()
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture()
def monitor_factory(clock, frames, sink):
    """Build monitors wired to the shared fakes.

    The check interval defaults to an hour so only the immediate first
    round fires on its own; later rounds are driven with force_check().
    """

    def _factory(classifier, **config_overrides) -> CollisionMonitor:
        config = MonitorConfig(check_interval_sec=3600.0)
        for key, value in config_overrides.items():
            setattr(config, key, value)
        return CollisionMonitor(
            frame_source=frames,
            classifier=classifier,
            alert_sink=sink,
            config=config,
            clock=clock,
        )

    return _factory


@pytest.fixture()
def api_classifier() -> ScriptedClassifier:
    return ScriptedClassifier(critical("I see a person standing at approximately 10 feet ahead"))


@pytest.fixture()
def api_client(monkeypatch, api_classifier):
    """TestClient with the vision classifier replaced by a scripted fake."""
    from services.api_gateway import dependencies
    from services.api_gateway.app import app

    asyncio.run(dependencies.reset_state())
    monkeypatch.setattr(dependencies.session_registry, "classifier", api_classifier)
    monkeypatch.setattr(dependencies.session_registry, "_debug_hook", None)

    with TestClient(app) as client:
        yield client
