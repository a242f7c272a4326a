"""Orchestrator facade.

Wires the control-plane client to the probes, the poller, the pagination
adapter and the resource lock registry. Every public operation returns a
typed result; transport failures are reported, not raised.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel

from .client import Command, ControlPlaneClient, TransportError, raise_for_status
from .config import Config, ResourceKind
from .locks import ResourceMutexRegistry
from .pagination import (
    KubernetesListSource,
    KubernetesResource,
    WindowRequest,
    fetch_window,
    list_namespaces,
    slice_window,
)
from .poller import (
    Classifier,
    OutcomeKind,
    Probe,
    ReconciliationOutcome,
    ReconciliationPoller,
    ReconciliationRequest,
)
from .probes import (
    ApplicationProbe,
    ProjectProbe,
    ServerCountProbe,
    ServerExpectation,
    ServerMatch,
    VirtualClusterKey,
    VirtualClusterProbe,
    classify_application,
    classify_project,
    classify_server_count,
    classify_virtual_cluster,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WaitOptions:
    """Per-call overrides; unset or zero values fall back to the kind's defaults."""

    poll_interval: float | None = None
    timeout: float | None = None
    wait_for_deletion: bool = False


@dataclass(frozen=True)
class FetchResult:
    """Either the window's items or the error that prevented fetching them."""

    items: list[Any] | None = None
    error: TransportError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, Any]:
        if self.error is not None:
            return {"success": False, "error": str(self.error)}
        items = [i.model_dump(by_alias=True) if isinstance(i, BaseModel) else i for i in self.items or []]
        return {"success": True, "items": items, "count": len(items)}


@dataclass(frozen=True)
class ServerVerification:
    """Result of adding servers to a project and verifying they appear."""

    project_id: int
    expectation: ServerExpectation
    outcome: ReconciliationOutcome

    @property
    def match(self) -> ServerMatch | None:
        last = self.outcome.last_probe
        if last is not None and isinstance(last.raw, ServerMatch):
            return last.raw
        return None

    @property
    def verified(self) -> bool:
        return self.outcome.kind == OutcomeKind.READY

    @property
    def expected(self) -> int:
        return self.expectation.expected

    @property
    def found(self) -> int:
        return self.match.found if self.match else 0

    @property
    def servers(self) -> list[Any]:
        return list(self.match.servers) if self.match else []

    @property
    def message(self) -> str:
        if self.verified:
            return (
                f"Successfully added {self.expected} server(s) of type {self.expectation.role} "
                f"with flavor {self.expectation.flavor} to project {self.project_id}"
            )
        if self.outcome.kind == OutcomeKind.TIMED_OUT:
            return (
                "Server creation request accepted but not verified within timeout "
                f"(expected {self.expected})"
            )
        if self.outcome.kind == OutcomeKind.CANCELLED:
            return f"Stopped verifying servers of project {self.project_id} (expected {self.expected})"
        return f"Failed to add server to project {self.project_id}: {self.outcome.error}"

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "message": self.message,
            "success": self.verified,
            "verified": self.verified,
            "expected": self.expected,
            "found": self.found,
            "state": self.outcome.state.value,
        }
        if self.servers:
            data["servers"] = [s.model_dump(by_alias=True) for s in self.servers]
        return data


class Orchestrator:
    """Blocking operations over the control plane.

    Independent calls may run concurrently on separate threads. Adding
    servers is serialized per project through the lock registry.
    """

    def __init__(
        self,
        client: ControlPlaneClient,
        config: Config | None = None,
        poller: ReconciliationPoller | None = None,
        locks: ResourceMutexRegistry | None = None,
    ) -> None:
        self._client = client
        self._config = config or Config()
        self._poller = poller or ReconciliationPoller()
        self._locks = locks or ResourceMutexRegistry()

    @property
    def locks(self) -> ResourceMutexRegistry:
        return self._locks

    def build_request(self, kind: ResourceKind, key: Any, options: WaitOptions | None = None) -> ReconciliationRequest:
        """Combine per-call options with the configured defaults for a kind."""
        options = options or WaitOptions()
        if kind == ResourceKind.SERVER and options.wait_for_deletion:
            raise ValueError("servers cannot be waited on for deletion")
        defaults = self._config.defaults_for(kind)
        return ReconciliationRequest(
            resource_kind=kind,
            resource_key=key,
            poll_interval=options.poll_interval or defaults.poll_interval_seconds,
            timeout=options.timeout or defaults.timeout_for(options.wait_for_deletion),
            wait_for_deletion=options.wait_for_deletion,
        )

    def probe_for(self, kind: ResourceKind, key: Any) -> tuple[Probe, Classifier]:
        """Select the probe and classifier for a resource kind."""
        if kind == ResourceKind.PROJECT:
            return ProjectProbe(self._client, int(key)), classify_project
        if kind == ResourceKind.VIRTUAL_CLUSTER:
            if not isinstance(key, VirtualClusterKey):
                raise TypeError("virtual clusters are addressed by VirtualClusterKey")
            return VirtualClusterProbe(self._client, key), classify_virtual_cluster
        if kind == ResourceKind.APPLICATION:
            return ApplicationProbe(self._client, int(key)), classify_application
        raise ValueError("servers are verified through add_servers")

    def await_reconciliation(
        self,
        kind: ResourceKind,
        key: Any,
        options: WaitOptions | None = None,
        cancel: threading.Event | None = None,
    ) -> ReconciliationOutcome:
        """Block until a resource is ready (or deleted), fails, or times out.

        Args:
            kind: Resource kind to wait for
            key: Project id, VirtualClusterKey, or project app id
            options: Poll interval, timeout and deletion mode overrides
            cancel: Optional event that ends the wait when set

        Raises:
            ValueError: If the kind cannot be waited on in the requested mode.
        """
        request = self.build_request(kind, key, options)
        probe, classify = self.probe_for(kind, key)
        return self._poller.wait(request, probe, classify, cancel=cancel)

    def fetch_window(self, resource: KubernetesResource, project_id: int, window: WindowRequest) -> FetchResult:
        """Fetch an offset/limit window of a project's Kubernetes list."""
        try:
            if resource == KubernetesResource.NAMESPACES:
                items: list[Any] = slice_window(list_namespaces(self._client, project_id), window)
            else:
                source = KubernetesListSource(self._client, project_id, resource)
                items = fetch_window(source, window, default_per_page=self._config.default_page_size)
        except TransportError as e:
            logger.warning(
                f"Failed to list {resource.value}: {e}",
                extra={"project_id": project_id, "resource": resource.value, "status_code": e.status_code},
            )
            return FetchResult(error=e)
        return FetchResult(items=items)

    def add_servers(
        self,
        project_id: int,
        command: Command,
        expectation: ServerExpectation,
        timeout: float | None = None,
        cancel: threading.Event | None = None,
    ) -> ServerVerification:
        """Add servers to a project and wait until they are listed.

        The add command and the verification run under the project's
        lock, so concurrent additions to one project do not count each
        other's servers.
        """
        request = self.build_request(ResourceKind.SERVER, project_id, WaitOptions(timeout=timeout))

        with self._locks.hold(project_id):
            try:
                result = self._client.execute(command)
                raise_for_status(result, "add server to project")
            except TransportError as e:
                logger.error(
                    f"Failed to add server to project {project_id}: {e}",
                    extra={"project_id": project_id, "status_code": e.status_code},
                )
                outcome = ReconciliationOutcome(
                    kind=OutcomeKind.TRANSPORT_ERROR,
                    resource_kind=ResourceKind.SERVER,
                    resource_key=project_id,
                    error=e,
                )
                return ServerVerification(project_id, expectation, outcome)

            probe = ServerCountProbe(self._client, project_id, expectation)
            outcome = self._poller.wait(request, probe, classify_server_count, cancel=cancel)

        return ServerVerification(project_id, expectation, outcome)
