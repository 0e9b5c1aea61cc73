"""Test doubles for the realtime bridge."""

import asyncio

from apps.realtime.bridge import SubscriptionHandlers


async def settle(rounds=10):
    """Let callbacks scheduled with call_soon run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


class FakeSleep:
    """Records requested delays in ms; blocks forever once ``limit`` is reached."""

    def __init__(self, limit=None):
        self.delays = []
        self.limit = limit

    async def __call__(self, seconds):
        self.delays.append(round(seconds * 1000))
        if self.limit is not None and len(self.delays) >= self.limit:
            await asyncio.Event().wait()


class Recorder:
    """Handler set that records every call."""

    def __init__(self):
        self.paid = []
        self.selecting = []
        self.items = []
        self.statuses = []
        self.errors = []
        self.fetches = 0

    def fetch(self):
        self.fetches += 1

    def handlers(self):
        return SubscriptionHandlers(
            on_selection_change=self.paid.append,
            on_active_selection_change=self.selecting.append,
            on_item_change=self.items.append,
            on_connection_status_change=self.statuses.append,
            on_error=self.errors.append,
            on_initial_fetch=self.fetch,
        )
