"""Shared fakes for the hub, the client connection and panel pollers."""

import json
import os
import sys

import pytest
from websockets.protocol import State

# Tests import the flat top-level packages (core, collectors, client, config)
ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from core.registry import Channel, ChannelRegistry  # noqa: E402


# ============================================================================
# Hub side
# ============================================================================

class FakeSocket:
    """Stands in for a websockets server connection."""

    def __init__(self, incoming=(), fail_send=None):
        self.state = State.OPEN
        self.sent = []
        self._incoming = list(incoming)
        self._fail_send = fail_send

    async def send(self, text):
        if self._fail_send is not None:
            raise self._fail_send
        self.sent.append(json.loads(text))

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for raw in self._incoming:
            yield raw

    def close(self):
        self.state = State.CLOSED

    def of_type(self, msg_type):
        return [m for m in self.sent if m.get("type") == msg_type]


class SequenceFetcher:
    """Returns the queued values in order, repeating the last one."""

    def __init__(self, *values):
        self.values = list(values)
        self.calls = 0

    def __call__(self):
        index = min(self.calls, len(self.values) - 1)
        self.calls += 1
        value = self.values[index]
        if isinstance(value, Exception):
            raise value
        return value


def make_registry(**fetchers):
    """Registry of channels named by keyword (underscores become colons)."""
    channels = []
    for key, entry in fetchers.items():
        if isinstance(entry, tuple):
            fetcher, threshold, comparator = entry
        else:
            fetcher, threshold, comparator = entry, None, None
        kwargs = {"comparator": comparator} if comparator is not None else {}
        channels.append(Channel(key.replace("__", ":"), fetcher, 1000, threshold, **kwargs))
    return ChannelRegistry(channels)


# ============================================================================
# Client side
# ============================================================================

class FakeWebSocketApp:
    """Records everything a websocket.WebSocketApp would be asked to do."""

    instances = []

    def __init__(self, url, on_open=None, on_message=None, on_error=None, on_close=None):
        self.url = url
        self.on_open = on_open
        self.on_message = on_message
        self.on_error = on_error
        self.on_close = on_close
        self.sent = []
        self.closed = False
        FakeWebSocketApp.instances.append(self)

    def run_forever(self):
        pass

    def send(self, text):
        self.sent.append(json.loads(text))

    def close(self):
        self.closed = True

    # Drive the callbacks the way the websocket thread would
    def open(self):
        self.on_open(self)

    def receive(self, message):
        self.on_message(self, json.dumps(message))

    def drop(self):
        self.on_close(self, 1006, "gone")


class FakeTimer:
    """threading.Timer stand-in that only fires when told to."""

    created = []

    def __init__(self, interval, function):
        self.interval = interval
        self.function = function
        self.daemon = False
        self.started = False
        self.cancelled = False
        FakeTimer.created.append(self)

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        if not self.cancelled:
            self.function()


class FakePoller:
    """RepeatingTimer stand-in; tests call tick() to run one poll."""

    created = []

    def __init__(self, interval, fn, name="poller"):
        self.interval = interval
        self.fn = fn
        self.name = name
        self.started = False
        self.stopped = False
        FakePoller.created.append(self)

    def start(self):
        self.started = True

    def stop(self):
        self.stopped = True

    def tick(self):
        self.fn()


class FakeConnection:
    """Minimal ConnectionManager surface used by PanelDataSource."""

    def __init__(self, connected=False):
        self.connected = connected
        self.listeners = []
        self.subscriptions = {}

    def is_connected(self):
        return self.connected

    def add_connection_listener(self, on_connect=None, on_disconnect=None):
        entry = (on_connect, on_disconnect)
        self.listeners.append(entry)
        return lambda: self.listeners.remove(entry)

    def subscribe(self, channel, callback):
        self.subscriptions.setdefault(channel, []).append(callback)

        def unsubscribe():
            self.subscriptions[channel].remove(callback)
            if not self.subscriptions[channel]:
                del self.subscriptions[channel]
        return unsubscribe

    def set_connected(self, connected):
        self.connected = connected
        for on_connect, on_disconnect in list(self.listeners):
            cb = on_connect if connected else on_disconnect
            if cb:
                cb()

    def push(self, channel, data, timestamp=1):
        for cb in list(self.subscriptions.get(channel, [])):
            cb(data, timestamp)


@pytest.fixture(autouse=True)
def reset_fakes():
    FakeWebSocketApp.instances.clear()
    FakeTimer.created.clear()
    FakePoller.created.clear()
    yield
