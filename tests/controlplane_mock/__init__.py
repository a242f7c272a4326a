"""Control-plane mock for testing.

Provides an in-memory control-plane client with scripted responses and a
fake clock, so waits and pagination run without network or sleeping.

Usage:
    from controlplane_mock import FakeClock, ScriptedClient

    client = ScriptedClient()
    client.respond("GET", "/api/v1/projects", json_response({"data": []}))
    clock = FakeClock()
    poller = ReconciliationPoller(clock=clock, sleeper=clock.sleep)
"""

from .client import ScriptedClient, json_response, text_response
from .clock import FakeClock

__all__ = [
    "FakeClock",
    "ScriptedClient",
    "json_response",
    "text_response",
]
