"""
MODULE OVERVIEW:
The Rich Terminal Dashboard for a live channel.

WHAT IS HAPPENING HERE:
The dashboard owns no connection logic. The CLI subscribes with an `on_event`
built by `Visualizer.event_hook()`, and hands `Visualizer.on_status_change` to the
client as its status callback. The Live layout is redrawn a few times a second
until the watch duration runs out.
"""
import asyncio
import json
from collections import deque
from datetime import datetime

from rich.layout import Layout
from rich.live import Live
from rich.panel import Panel
from rich.table import Table

from urbit_channel.client.channel_client import UrbitChannelClient


class Visualizer:
    def __init__(self, client: UrbitChannelClient):
        self.client = client
        self.recent_events = deque(maxlen=15)
        self.status = "INITIALIZING"
        self.timeline = deque(maxlen=6)

    def on_status_change(self, status: str):
        self.status = status
        ts = datetime.now().strftime("%H:%M:%S")
        self.timeline.appendleft(f"[{ts}] {status} ({self.client.channel_id})")

    def event_hook(self, label: str):
        def on_event(content):
            ts = datetime.now().strftime("%H:%M:%S")
            text = json.dumps(content)
            self.recent_events.appendleft((ts, label, text[:60] + "..." if len(text) > 60 else text))
        return on_event

    def generate_layout(self) -> Layout:
        layout = Layout()
        layout.split_column(
            Layout(name="header", size=3),
            Layout(name="main")
        )
        layout["main"].split_row(
            Layout(name="left", ratio=2),
            Layout(name="right", ratio=1)
        )
        layout["right"].split_column(
            Layout(name="stats"),
            Layout(name="timeline"),
        )

        color = "green" if self.status == "ACTIVE" else "yellow" if self.status in ("CONNECTING", "RECONNECTING") else "red"
        layout["header"].update(Panel(f"[{color} bold]Ship: ~{self.client.ship} | Status: {self.status}[/]", style=color))

        table = Table(title="Live Event Feed", expand=True)
        table.add_column("Time", justify="left", style="cyan", no_wrap=True)
        table.add_column("Subscription", style="magenta")
        table.add_column("Content", style="green")
        for e in self.recent_events:
            table.add_row(e[0], e[1], e[2])
        layout["left"].update(Panel(table, title="Feed"))

        stats = self.client.stats
        stats_text = (
            f"Subscriptions: {len(self.client.registry)}\n"
            f"Events Received: {stats['events_received']}\n"
            f"Frames Dropped: {stats['frames_dropped']}\n"
            f"Reconnects: {stats['reconnect_count']}\n"
            f"Bytes: {stats['bytes_received']}"
        )
        layout["stats"].update(Panel(stats_text, title="Channel Stats"))
        layout["timeline"].update(Panel("\n".join(self.timeline), title="Timeline"))
        return layout

    async def run(self, duration_s: float):
        loop = asyncio.get_running_loop()
        deadline = loop.time() + duration_s
        with Live(self.generate_layout(), refresh_per_second=4) as live:
            while loop.time() < deadline and self.status not in ("FAILED", "CLOSED"):
                live.update(self.generate_layout())
                await asyncio.sleep(0.25)
            live.update(self.generate_layout())
