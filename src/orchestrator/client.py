"""Remote control-plane client.

Commands are plain descriptors; the client turns them into HTTP requests
and hands back the status code, the decoded payload and the raw text.
Network failures raise TransportError. HTTP error statuses are returned
to the caller, which decides whether a 404 means "gone" or "broken".
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx

from .config import Config

logger = logging.getLogger(__name__)

# Body fields the backend uses to describe an error
ERROR_DETAIL_FIELDS = ("message", "detail", "title", "error")
MAX_ERROR_TEXT_LENGTH = 500


class TransportError(Exception):
    """Raised when the control plane cannot be reached or answers with an error."""

    def __init__(self, message: str, status_code: int | None = None, operation: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.operation = operation


@dataclass(frozen=True)
class Command:
    """A single remote call."""

    name: str
    method: str
    path: str
    params: dict[str, Any] = field(default_factory=dict)
    json: Any = None


@dataclass(frozen=True)
class CommandResult:
    """What the control plane answered."""

    status_code: int
    payload: Any = None
    text: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def not_found(self) -> bool:
        return self.status_code == 404


class ControlPlaneClient(Protocol):
    """Anything that can execute a command against the control plane."""

    def execute(self, command: Command) -> CommandResult: ...


def error_detail(result: CommandResult) -> str:
    """Extract a human-readable reason from an error response."""
    if isinstance(result.payload, dict):
        for key in ERROR_DETAIL_FIELDS:
            value = result.payload.get(key)
            if isinstance(value, str) and value:
                return value
    text = result.text.strip()
    if text:
        return text[:MAX_ERROR_TEXT_LENGTH]
    return "no response body"


def raise_for_status(result: CommandResult, operation: str) -> None:
    """Raise TransportError unless the result carries a 2xx status."""
    if result.ok:
        return
    raise TransportError(
        f"Failed to {operation}. HTTP Status: {result.status_code}: {error_detail(result)}",
        status_code=result.status_code,
        operation=operation,
    )


class HttpControlPlaneClient:
    """Control-plane client over HTTP.

    Authentication is supplied by the caller as default headers or an
    httpx auth object; this class never reads credentials itself.
    """

    def __init__(
        self,
        config: Config,
        headers: dict[str, str] | None = None,
        auth: httpx.Auth | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._config = config
        self._http = httpx.Client(
            base_url=config.base_url,
            headers=headers,
            auth=auth,
            timeout=config.http_timeout_seconds,
            transport=transport,
        )

    def __enter__(self) -> HttpControlPlaneClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        self._http.close()

    def execute(self, command: Command) -> CommandResult:
        """Execute a command.

        Raises:
            TransportError: If the request could not be completed.
        """
        params = {k: v for k, v in command.params.items() if v is not None and v != ""}

        try:
            response = self._http.request(
                command.method,
                command.path,
                params=params or None,
                json=command.json,
            )
        except httpx.TimeoutException as e:
            raise TransportError(f"{command.name}: request timed out", operation=command.name) from e
        except httpx.RequestError as e:
            raise TransportError(f"{command.name}: {e}", operation=command.name) from e

        payload: Any = None
        if response.content:
            try:
                payload = response.json()
            except ValueError:
                payload = None

        logger.debug(
            "Control-plane call completed",
            extra={
                "command": command.name,
                "method": command.method,
                "path": command.path,
                "status_code": response.status_code,
            },
        )

        return CommandResult(status_code=response.status_code, payload=payload, text=response.text)
