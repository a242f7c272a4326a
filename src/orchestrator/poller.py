"""Generic reconciliation poller.

The control plane accepts a command and converges later. The poller turns
that into a blocking call: probe the resource, classify what came back,
sleep, and repeat until a terminal outcome or the deadline.

One poller serves every resource kind. The kind-specific parts are the
probe (how to observe the resource) and the classifier (what the observed
status means); both are passed in per call.

Every wait produces exactly one ReconciliationOutcome:
- READY: the classifier accepted the observed state
- DELETED: the resource disappeared while waiting for deletion
- FAILED: a terminal failure status, or the resource vanished unexpectedly
- TIMED_OUT: the deadline passed with the resource still converging
- TRANSPORT_ERROR: a probe could not reach the control plane (not retried)
- CANCELLED: the caller's cancellation event was set
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .client import TransportError
from .config import ResourceKind

logger = logging.getLogger(__name__)

NOT_FOUND_REASON = "resource not found"


class OutcomeKind(str, Enum):
    """Terminal result of a wait."""

    READY = "ready"
    DELETED = "deleted"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    TRANSPORT_ERROR = "transport_error"
    CANCELLED = "cancelled"


class OutcomeState(str, Enum):
    """Coarse state reported to callers."""

    DONE = "done"
    FAILED = "failed"
    # The resource may still converge; the caller stopped watching
    PENDING = "pending"


_STATE_BY_KIND = {
    OutcomeKind.READY: OutcomeState.DONE,
    OutcomeKind.DELETED: OutcomeState.DONE,
    OutcomeKind.FAILED: OutcomeState.FAILED,
    OutcomeKind.TRANSPORT_ERROR: OutcomeState.FAILED,
    OutcomeKind.TIMED_OUT: OutcomeState.PENDING,
    OutcomeKind.CANCELLED: OutcomeState.PENDING,
}


class Verdict(str, Enum):
    """What a classifier concluded from one probe."""

    CONTINUE = "continue"
    READY = "ready"
    FAILED = "failed"
    DELETED = "deleted"


@dataclass(frozen=True)
class ReconciliationRequest:
    """Parameters of a single wait."""

    resource_kind: ResourceKind
    resource_key: Any
    poll_interval: float
    timeout: float
    wait_for_deletion: bool = False

    def __post_init__(self) -> None:
        if self.poll_interval <= 0:
            raise ValueError(f"poll_interval must be positive: {self.poll_interval}")
        if self.timeout <= 0:
            raise ValueError(f"timeout must be positive: {self.timeout}")


@dataclass(frozen=True)
class ProbeResult:
    """One observation of a resource."""

    found: bool
    status: str = ""
    health: str | None = None
    raw: Any = None

    @classmethod
    def missing(cls, raw: Any = None) -> ProbeResult:
        return cls(found=False, raw=raw)


@dataclass(frozen=True)
class Classification:
    """Classifier verdict, with a reason when the verdict is FAILED."""

    verdict: Verdict
    reason: str | None = None

    @classmethod
    def proceed(cls) -> Classification:
        return cls(Verdict.CONTINUE)

    @classmethod
    def ready(cls) -> Classification:
        return cls(Verdict.READY)

    @classmethod
    def failed(cls, reason: str) -> Classification:
        return cls(Verdict.FAILED, reason)


Probe = Callable[[], ProbeResult]
Classifier = Callable[[ProbeResult], Classification]
Clock = Callable[[], float]
# Sleeps for the given seconds; returns True when woken by cancellation
Sleeper = Callable[[float, threading.Event | None], bool]


@dataclass(frozen=True)
class ReconciliationOutcome:
    """Terminal result of a wait, with the last observation for diagnostics."""

    kind: OutcomeKind
    resource_kind: ResourceKind
    resource_key: Any
    reason: str | None = None
    error: Exception | None = None
    last_probe: ProbeResult | None = None
    probe_count: int = 0
    elapsed_seconds: float = 0.0

    @property
    def state(self) -> OutcomeState:
        return _STATE_BY_KIND[self.kind]

    @property
    def success(self) -> bool:
        return self.state == OutcomeState.DONE

    @property
    def message(self) -> str:
        """Human-readable summary."""
        subject = f"{self.resource_kind.value} {self.resource_key}"
        if self.kind == OutcomeKind.READY:
            return f"{subject} is ready"
        if self.kind == OutcomeKind.DELETED:
            return f"{subject} has been deleted"
        if self.kind == OutcomeKind.FAILED:
            return f"{subject} failed: {self.reason}"
        if self.kind == OutcomeKind.TIMED_OUT:
            return f"Timeout waiting for {subject} after {self.elapsed_seconds:.0f} seconds"
        if self.kind == OutcomeKind.CANCELLED:
            return f"Stopped waiting for {subject}"
        return f"Error checking {subject}: {self.error}"

    def to_dict(self) -> dict[str, Any]:
        """Structured form for callers that serialize outcomes."""
        data: dict[str, Any] = {
            "outcome": self.kind.value,
            "state": self.state.value,
            "success": self.success,
            "message": self.message,
            "resourceKind": self.resource_kind.value,
            "resourceKey": str(self.resource_key),
            "probes": self.probe_count,
            "elapsedSeconds": round(self.elapsed_seconds, 3),
        }
        if self.reason:
            data["reason"] = self.reason
        if self.error is not None:
            data["error"] = str(self.error)
        if self.last_probe is not None and self.last_probe.found:
            data["lastStatus"] = self.last_probe.status
            if self.last_probe.health is not None:
                data["lastHealth"] = self.last_probe.health
        return data


def _default_sleep(seconds: float, cancel: threading.Event | None) -> bool:
    if cancel is None:
        time.sleep(seconds)
        return False
    return cancel.wait(seconds)


class ReconciliationPoller:
    """Blocking wait loop shared by every resource kind.

    Probes are strictly sequential within one wait. The poller keeps no
    state between waits, so one instance can serve concurrent callers on
    separate threads.
    """

    def __init__(
        self,
        clock: Clock = time.monotonic,
        sleeper: Sleeper = _default_sleep,
        log: logging.Logger | None = None,
    ) -> None:
        self._clock = clock
        self._sleep = sleeper
        self._log = log or logger

    def wait(
        self,
        request: ReconciliationRequest,
        probe: Probe,
        classify: Classifier,
        cancel: threading.Event | None = None,
    ) -> ReconciliationOutcome:
        """Poll until the resource reaches a terminal state.

        Args:
            request: What to wait for and for how long
            probe: Observes the resource once; raises TransportError
            classify: Interprets an observation of an existing resource
            cancel: Optional event; setting it ends the wait promptly

        Returns:
            Exactly one ReconciliationOutcome.
        """
        start = self._clock()
        deadline = start + request.timeout
        probe_count = 0
        last: ProbeResult | None = None

        def finish(kind: OutcomeKind, reason: str | None = None, error: Exception | None = None) -> ReconciliationOutcome:
            outcome = ReconciliationOutcome(
                kind=kind,
                resource_kind=request.resource_kind,
                resource_key=request.resource_key,
                reason=reason,
                error=error,
                last_probe=last,
                probe_count=probe_count,
                elapsed_seconds=self._clock() - start,
            )
            self._log.info(
                outcome.message,
                extra={
                    "resource_kind": request.resource_kind.value,
                    "resource_key": str(request.resource_key),
                    "outcome": kind.value,
                    "probes": probe_count,
                },
            )
            return outcome

        self._log.info(
            f"Waiting for {request.resource_kind.value} {request.resource_key} "
            f"to be {'deleted' if request.wait_for_deletion else 'ready'}",
            extra={
                "resource_kind": request.resource_kind.value,
                "resource_key": str(request.resource_key),
                "timeout_seconds": request.timeout,
                "poll_interval_seconds": request.poll_interval,
            },
        )

        while True:
            if cancel is not None and cancel.is_set():
                return finish(OutcomeKind.CANCELLED)

            if self._clock() >= deadline:
                return finish(OutcomeKind.TIMED_OUT)

            try:
                result = probe()
            except TransportError as e:
                probe_count += 1
                return finish(OutcomeKind.TRANSPORT_ERROR, error=e)

            probe_count += 1
            last = result

            self._log.info(
                "Observed resource state",
                extra={
                    "resource_kind": request.resource_kind.value,
                    "resource_key": str(request.resource_key),
                    "found": result.found,
                    "status": result.status,
                    "health": result.health,
                    "probe": probe_count,
                },
            )

            if not result.found:
                if request.wait_for_deletion:
                    return finish(OutcomeKind.DELETED)
                return finish(OutcomeKind.FAILED, reason=NOT_FOUND_REASON)

            # A resource that still exists is never terminal while waiting for deletion
            if not request.wait_for_deletion:
                verdict = classify(result)
                if verdict.verdict == Verdict.READY:
                    return finish(OutcomeKind.READY)
                if verdict.verdict == Verdict.DELETED:
                    return finish(OutcomeKind.DELETED)
                if verdict.verdict == Verdict.FAILED:
                    return finish(OutcomeKind.FAILED, reason=verdict.reason)

            remaining = deadline - self._clock()
            if remaining <= 0:
                return finish(OutcomeKind.TIMED_OUT)
            if self._sleep(min(request.poll_interval, remaining), cancel):
                return finish(OutcomeKind.CANCELLED)
