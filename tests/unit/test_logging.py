"""Tests for the structlog processor chain."""

import structlog

from datenassistent.core.logging import _default_channel, _processors


class TestChannel:
    def test_operational_events_default_to_app(self):
        event = _default_channel(None, "info", {"event": "Query executed"})

        assert event["channel"] == "app"

    def test_bound_channel_kept(self):
        event = _default_channel(None, "info", {"event": "audit", "channel": "audit"})

        assert event["channel"] == "audit"


class TestProcessors:
    def test_console_renderer_in_development(self):
        assert isinstance(_processors(console=True)[-1], structlog.dev.ConsoleRenderer)

    def test_json_lines_keep_umlauts(self):
        renderer = _processors(console=False)[-1]

        line = renderer(None, "info", {"event": "Gerüst prüfen", "channel": "app"})

        assert isinstance(renderer, structlog.processors.JSONRenderer)
        assert "Gerüst prüfen" in line
