"""Scripted control-plane client for testing."""

from __future__ import annotations

import json
import threading
from collections import defaultdict
from typing import Any

from orchestrator.client import Command, CommandResult

Response = CommandResult | Exception


def json_response(payload: Any, status_code: int = 200) -> CommandResult:
    """Build a result the way the HTTP client decodes a JSON body."""
    return CommandResult(status_code=status_code, payload=payload, text=json.dumps(payload))


def text_response(text: str, status_code: int = 200) -> CommandResult:
    """Build a result whose body is not decodable JSON."""
    return CommandResult(status_code=status_code, payload=None, text=text)


class ScriptedClient:
    """In-memory control-plane client.

    Responses are scripted per (method, path) and consumed in order; the
    last one repeats once the script runs out. A scripted exception is
    raised instead of returned. Every executed command is recorded.
    """

    def __init__(self) -> None:
        """Initialize mock state."""
        self._scripts: dict[tuple[str, str], list[Response]] = defaultdict(list)
        self._lock = threading.Lock()
        self.commands: list[Command] = []

    def respond(self, method: str, path: str, *responses: Response) -> None:
        """Append responses for a method and path."""
        self._scripts[(method.upper(), path)].extend(responses)

    def calls(self, method: str, path: str) -> list[Command]:
        """Commands executed against a method and path."""
        return [c for c in self.commands if c.method.upper() == method.upper() and c.path == path]

    def execute(self, command: Command) -> CommandResult:
        with self._lock:
            self.commands.append(command)
            script = self._scripts.get((command.method.upper(), command.path))
            if not script:
                raise AssertionError(f"unexpected command: {command.method} {command.path}")
            response = script.pop(0) if len(script) > 1 else script[0]
        if isinstance(response, Exception):
            raise response
        return response
