"""Tests for the CLI and the terminal dashboard."""

import httpx
from rich.layout import Layout
from typer.testing import CliRunner

from urbit_channel.client.channel_client import UrbitChannelClient
from urbit_channel.client.visualizer import Visualizer
from urbit_channel.runner import app

from .conftest import COOKIE, SHIP_URL

runner = CliRunner()


class TestRunner:
    """Tests for the typer commands."""

    def test_help_lists_commands(self):
        """All three commands are registered."""
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        for command in ("watch", "poke", "mock-ship"):
            assert command in result.output

    def test_poke_rejects_bad_json(self):
        """An unparseable payload exits with an error before any network call."""
        result = runner.invoke(app, ["poke", "chat", "chat-dm-action", "{not json"])
        assert result.exit_code == 1
        assert "not valid JSON" in result.output


class TestVisualizer:
    """Tests for the dashboard's bookkeeping."""

    def make(self):
        http = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(204)))
        return Visualizer(UrbitChannelClient(SHIP_URL, COOKIE, ship="zod", http_client=http))

    def test_status_timeline(self):
        """Status changes update the header state and the timeline."""
        visualizer = self.make()
        visualizer.on_status_change("CONNECTING")
        visualizer.on_status_change("ACTIVE")

        assert visualizer.status == "ACTIVE"
        assert "ACTIVE" in visualizer.timeline[0]
        assert len(visualizer.timeline) == 2

    def test_event_hook_truncates(self):
        """Long event bodies are shortened for the feed table."""
        visualizer = self.make()
        hook = visualizer.event_hook("chat/dm/~nec")

        hook({"text": "x" * 200})

        _, label, text = visualizer.recent_events[0]
        assert label == "chat/dm/~nec"
        assert text.endswith("...")
        assert len(text) == 63

    def test_layout_renders(self):
        """A layout can be built before anything has happened."""
        assert isinstance(self.make().generate_layout(), Layout)
