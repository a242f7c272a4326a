"""Cursor-to-window pagination.

The control plane pages Kubernetes lists with opaque cursors while callers
ask for an offset/limit window. fetch_window walks the cursor chain, drops
the first `offset` items, and stops as soon as the window is full.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Generic, Protocol, TypeVar

from pydantic import ValidationError

from .client import Command, ControlPlaneClient, TransportError, raise_for_status
from .config import DEFAULT_PAGE_SIZE
from .models import (
    ConfigMapItem,
    CursorEnvelope,
    DaemonSetItem,
    DeploymentItem,
    IngressItem,
    KubernetesItem,
    NodeItem,
    PersistentVolumeClaimItem,
    PodItem,
    SecretItem,
    ServiceItem,
    StatefulSetItem,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")
T_co = TypeVar("T_co", covariant=True)


class PaginationProtocolError(TransportError):
    """Raised when the backend claims more pages without a usable cursor."""

    pass


@dataclass(frozen=True)
class WindowRequest:
    """An offset/limit window; limit 0 means unbounded."""

    offset: int = 0
    limit: int = 0
    search: str | None = None

    def __post_init__(self) -> None:
        if self.offset < 0:
            raise ValueError(f"offset must not be negative: {self.offset}")
        if self.limit < 0:
            raise ValueError(f"limit must not be negative: {self.limit}")


@dataclass(frozen=True)
class Page(Generic[T]):
    """One cursor page as returned by the backend."""

    items: list[T] = field(default_factory=list)
    has_more: bool = False
    next_cursor: str | None = None
    total_count: int = 0


class PageSource(Protocol[T_co]):
    """Anything that can return one cursor page."""

    def fetch_page(self, cursor: str | None, per_page: int, search: str | None) -> Page[T_co]: ...


def fetch_window(source: PageSource[T], window: WindowRequest, default_per_page: int = DEFAULT_PAGE_SIZE) -> list[T]:
    """Collect the items of an offset/limit window from a cursor source.

    Pages are requested with the window's limit as page size (or
    default_per_page for unbounded windows). The result holds at most
    `limit` items and is short only when the source runs out.

    Raises:
        TransportError: If a page cannot be fetched.
        PaginationProtocolError: If a page claims more results but its
            cursor is empty or was already visited.
    """
    per_page = window.limit or default_per_page
    to_skip = window.offset
    items: list[T] = []
    seen_cursors: set[str] = set()
    cursor: str | None = None
    pages = 0

    while True:
        page = source.fetch_page(cursor, per_page, window.search)
        pages += 1
        page_items = list(page.items)

        if to_skip:
            if to_skip >= len(page_items):
                to_skip -= len(page_items)
                page_items = []
            else:
                page_items = page_items[to_skip:]
                to_skip = 0

        if window.limit:
            page_items = page_items[: window.limit - len(items)]
        items.extend(page_items)

        if window.limit and len(items) >= window.limit:
            break
        if not page.has_more:
            break
        if not page.next_cursor:
            raise PaginationProtocolError("page reports more results but carries no cursor")
        if page.next_cursor in seen_cursors:
            raise PaginationProtocolError(f"cursor repeated: {page.next_cursor}")
        seen_cursors.add(page.next_cursor)
        cursor = page.next_cursor

    logger.debug(
        "Fetched window",
        extra={"offset": window.offset, "limit": window.limit, "pages": pages, "items": len(items)},
    )
    return items


def slice_window(items: Iterable[T], window: WindowRequest, text: Callable[[T], str] = str) -> list[T]:
    """Apply a window to a list the backend returns in one piece.

    The search term filters case-insensitively by substring before the
    offset and limit are applied.
    """
    selected = list(items)
    if window.search:
        needle = window.search.lower()
        selected = [item for item in selected if needle in text(item).lower()]
    start = min(window.offset, len(selected))
    end = start + window.limit if window.limit else len(selected)
    return selected[start:end]


# =============================================================================
# Kubernetes lists
# =============================================================================


class KubernetesResource(str, Enum):
    """Kubernetes lists served by the control plane, by path segment."""

    PODS = "pods"
    DEPLOYMENTS = "deployments"
    SERVICES = "service"
    CONFIG_MAPS = "configmap"
    SECRETS = "secret"
    INGRESSES = "ingress"
    DAEMON_SETS = "daemonset"
    NODES = "nodes"
    PERSISTENT_VOLUME_CLAIMS = "pvc"
    STATEFUL_SETS = "sts"
    # Not cursor-paged; windowed in memory
    NAMESPACES = "namespaces"


ITEM_MODELS: dict[KubernetesResource, type[KubernetesItem]] = {
    KubernetesResource.PODS: PodItem,
    KubernetesResource.DEPLOYMENTS: DeploymentItem,
    KubernetesResource.SERVICES: ServiceItem,
    KubernetesResource.CONFIG_MAPS: ConfigMapItem,
    KubernetesResource.SECRETS: SecretItem,
    KubernetesResource.INGRESSES: IngressItem,
    KubernetesResource.DAEMON_SETS: DaemonSetItem,
    KubernetesResource.NODES: NodeItem,
    KubernetesResource.PERSISTENT_VOLUME_CLAIMS: PersistentVolumeClaimItem,
    KubernetesResource.STATEFUL_SETS: StatefulSetItem,
}


class KubernetesListSource:
    """Cursor source over one Kubernetes list of a project."""

    def __init__(self, client: ControlPlaneClient, project_id: int, resource: KubernetesResource) -> None:
        if resource == KubernetesResource.NAMESPACES:
            raise ValueError("namespaces are not cursor-paged")
        self._client = client
        self._project_id = project_id
        self._resource = resource

    def fetch_page(self, cursor: str | None, per_page: int, search: str | None) -> Page[KubernetesItem]:
        operation = f"list {self._resource.value}"
        result = self._client.execute(
            Command(
                name=operation,
                method="GET",
                path=f"/api/v1/kubernetes/list/{self._project_id}/{self._resource.value}",
                params={"Limit": per_page, "Cursor": cursor, "SearchTerm": search},
            )
        )
        raise_for_status(result, operation)
        try:
            envelope = CursorEnvelope[ITEM_MODELS[self._resource]].model_validate(result.payload)
        except ValidationError as e:
            raise TransportError(
                f"Unexpected response while trying to {operation}",
                status_code=result.status_code,
                operation=operation,
            ) from e
        return Page(
            items=envelope.data,
            has_more=envelope.has_more,
            next_cursor=envelope.next_cursor,
            total_count=envelope.total_count,
        )


def list_namespaces(client: ControlPlaneClient, project_id: int) -> list[str]:
    """Fetch the full namespace list of a project."""
    result = client.execute(
        Command(
            name="list namespaces",
            method="GET",
            path=f"/api/v1/kubernetes/{project_id}/namespaces",
        )
    )
    raise_for_status(result, "list namespaces")
    payload = result.payload
    if not isinstance(payload, list) or not all(isinstance(name, str) for name in payload):
        raise TransportError(
            "Unexpected response while trying to list namespaces",
            status_code=result.status_code,
            operation="list namespaces",
        )
    return payload
