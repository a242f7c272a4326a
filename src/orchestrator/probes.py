"""Per-kind status probes and classifiers.

A probe performs one read against the control plane and reduces the
answer to a ProbeResult. A classifier decides whether an existing
resource is ready, failed, or still converging. Only exact sentinel
values are terminal; anything unrecognised keeps the poller waiting.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Collection
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import ValidationError

from .client import Command, CommandResult, ControlPlaneClient, TransportError, raise_for_status
from .models import (
    HEALTH_HEALTHY,
    HEALTH_UNHEALTHY,
    STATUS_FAILED,
    STATUS_FAILURE,
    STATUS_READY,
    ProjectAppDetails,
    ProjectList,
    ServerList,
    ServerRecord,
    VirtualClusterList,
)
from .poller import Classification, ProbeResult

logger = logging.getLogger(__name__)

PROJECT_FAILURE_STATUSES = frozenset({STATUS_FAILURE})
VIRTUAL_CLUSTER_FAILURE_STATUSES = frozenset({STATUS_FAILED})


def _validate(model: type[Any], result: CommandResult, operation: str) -> Any:
    try:
        return model.model_validate(result.payload)
    except ValidationError as e:
        raise TransportError(
            f"Unexpected response while trying to {operation}: {e.error_count()} validation error(s)",
            status_code=result.status_code,
            operation=operation,
        ) from e


# =============================================================================
# Classifiers
# =============================================================================


def two_axis_classifier(failure_statuses: Collection[str]) -> Callable[[ProbeResult], Classification]:
    """Build a classifier for resources that report both status and health.

    Ready requires status Ready AND health Healthy. A failure status OR
    health Unhealthy is terminal. Everything else is still converging.
    """

    def classify(result: ProbeResult) -> Classification:
        if result.status == STATUS_READY and result.health == HEALTH_HEALTHY:
            return Classification.ready()
        if result.status in failure_statuses:
            return Classification.failed(f"status: {result.status}, health: {result.health}")
        if result.health == HEALTH_UNHEALTHY:
            return Classification.failed(f"health: {result.health}, status: {result.status}")
        return Classification.proceed()

    return classify


classify_project = two_axis_classifier(PROJECT_FAILURE_STATUSES)
classify_virtual_cluster = two_axis_classifier(VIRTUAL_CLUSTER_FAILURE_STATUSES)


def classify_application(result: ProbeResult) -> Classification:
    """Applications report a single status axis."""
    if result.status == STATUS_READY:
        return Classification.ready()
    if result.status == STATUS_FAILED:
        return Classification.failed(f"installation failed - status: {result.status}")
    return Classification.proceed()


# =============================================================================
# Projects
# =============================================================================


class ProjectProbe:
    """Observe a project through the filtered project list."""

    def __init__(self, client: ControlPlaneClient, project_id: int) -> None:
        self._client = client
        self._project_id = project_id

    def command(self) -> Command:
        return Command(
            name="check project status",
            method="GET",
            path="/api/v1/projects",
            params={"Id": self._project_id},
        )

    def __call__(self) -> ProbeResult:
        result = self._client.execute(self.command())
        raise_for_status(result, "check project status")
        projects: ProjectList = _validate(ProjectList, result, "check project status")
        if not projects.data:
            return ProbeResult.missing(raw=result.payload)
        project = projects.data[0]
        return ProbeResult(found=True, status=project.status, health=project.health, raw=project)


# =============================================================================
# Virtual Clusters
# =============================================================================


@dataclass(frozen=True)
class VirtualClusterKey:
    """Virtual clusters are addressed by parent project and exact name."""

    parent_project_id: int
    name: str

    def __str__(self) -> str:
        return f"'{self.name}' (parent project {self.parent_project_id})"


class VirtualClusterProbe:
    """Observe a virtual cluster through its parent project's list.

    The backend search is a substring match, so records are filtered
    again by exact name.
    """

    def __init__(self, client: ControlPlaneClient, key: VirtualClusterKey) -> None:
        self._client = client
        self._key = key

    def command(self) -> Command:
        return Command(
            name="check virtual cluster status",
            method="GET",
            path=f"/api/v1/virtualcluster/{self._key.parent_project_id}",
            params={"Search": self._key.name},
        )

    def __call__(self) -> ProbeResult:
        result = self._client.execute(self.command())
        raise_for_status(result, "check virtual cluster status")
        clusters: VirtualClusterList = _validate(VirtualClusterList, result, "check virtual cluster status")
        for cluster in clusters.data:
            if cluster.name == self._key.name:
                return ProbeResult(found=True, status=cluster.status, health=cluster.health, raw=cluster)
        return ProbeResult.missing(raw=result.payload)


# =============================================================================
# Applications
# =============================================================================


class DecodeSource(str, Enum):
    """Where an application status was read from."""

    TYPED = "typed"
    RAW_EXTRACTED = "raw_extracted"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class DecodedStatus:
    """Tagged result of decoding an application details response."""

    source: DecodeSource
    status: str | None = None

    @property
    def known(self) -> bool:
        return self.source != DecodeSource.UNKNOWN


# Raw-text locations of the status, tried in order
RAW_STATUS_PATHS: tuple[tuple[str, ...], ...] = (("status",), ("data", "status"))


_MISSING = object()


def _lookup(document: Any, path: tuple[str, ...]) -> Any:
    node = document
    for key in path:
        if not isinstance(node, dict) or key not in node:
            return _MISSING
        node = node[key]
    return node


def _extract_raw_status(text: str) -> str | None:
    """Return the first status present in the raw body, or None if absent.

    A present key counts even when its value is null, blank or not a
    string; only a body with neither location is undecodable.
    """
    if not text:
        return None
    try:
        document = json.loads(text)
    except ValueError:
        return None
    for path in RAW_STATUS_PATHS:
        node = _lookup(document, path)
        if node is _MISSING:
            continue
        if node is None:
            return ""
        if isinstance(node, str):
            return node
        return json.dumps(node)
    return None


def decode_app_status(result: CommandResult) -> DecodedStatus:
    """Decode an application status from a details response.

    The validated payload is preferred. When it does not validate, the
    raw response text is searched for a top-level status, then for one
    nested under data.
    """
    try:
        details = ProjectAppDetails.model_validate(result.payload)
    except ValidationError:
        pass
    else:
        return DecodedStatus(DecodeSource.TYPED, details.status)

    status = _extract_raw_status(result.text)
    if status is not None:
        logger.debug("Application status read from raw response", extra={"status": status})
        return DecodedStatus(DecodeSource.RAW_EXTRACTED, status)
    return DecodedStatus(DecodeSource.UNKNOWN)


class ApplicationProbe:
    """Observe an application instance through its details endpoint."""

    def __init__(self, client: ControlPlaneClient, project_app_id: int) -> None:
        self._client = client
        self._project_app_id = project_app_id

    def command(self) -> Command:
        return Command(
            name="check application status",
            method="GET",
            path=f"/api/v1/projectapp/{self._project_app_id}",
        )

    def __call__(self) -> ProbeResult:
        result = self._client.execute(self.command())
        if result.not_found:
            return ProbeResult.missing()
        raise_for_status(result, "check application status")

        decoded = decode_app_status(result)
        if not decoded.known:
            return ProbeResult.missing(raw=decoded)
        return ProbeResult(found=True, status=decoded.status or "", raw=decoded)


# =============================================================================
# Servers
# =============================================================================


@dataclass(frozen=True)
class ServerExpectation:
    """Servers expected to appear after an add-server command.

    With a single server the name must match exactly. With several, the
    backend suffixes the names, so the name is matched as a prefix.
    Role and flavor are only checked when given.
    """

    name: str = ""
    role: str = ""
    flavor: str = ""
    count: int = 1

    @property
    def expected(self) -> int:
        return self.count if self.count > 0 else 1

    def matches(self, server: ServerRecord) -> bool:
        if self.name:
            if self.expected == 1 and server.name != self.name:
                return False
            if self.expected > 1 and not server.name.startswith(self.name):
                return False
        if self.role and server.role != self.role:
            return False
        if self.flavor and server.flavor != self.flavor:
            return False
        return True


@dataclass(frozen=True)
class ServerMatch:
    """Servers matching an expectation at one point in time."""

    expected: int
    servers: list[ServerRecord] = field(default_factory=list)

    @property
    def found(self) -> int:
        return len(self.servers)

    @property
    def verified(self) -> bool:
        return self.found >= self.expected


class ServerCountProbe:
    """Count the servers of a project that match an expectation."""

    def __init__(self, client: ControlPlaneClient, project_id: int, expectation: ServerExpectation) -> None:
        self._client = client
        self._project_id = project_id
        self._expectation = expectation

    def command(self) -> Command:
        return Command(
            name="verify server creation",
            method="GET",
            path=f"/api/v1/servers/{self._project_id}",
        )

    def __call__(self) -> ProbeResult:
        result = self._client.execute(self.command())
        raise_for_status(result, "verify server creation")
        servers: ServerList = _validate(ServerList, result, "verify server creation")
        matched = ServerMatch(
            expected=self._expectation.expected,
            servers=[s for s in servers.data if self._expectation.matches(s)],
        )
        return ProbeResult(found=True, status=f"{matched.found}/{matched.expected}", raw=matched)


def classify_server_count(result: ProbeResult) -> Classification:
    """Servers are verified once enough of them are listed."""
    if isinstance(result.raw, ServerMatch) and result.raw.verified:
        return Classification.ready()
    return Classification.proceed()
