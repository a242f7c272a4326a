"""Pydantic models for control-plane payloads.

These models provide:
1. Typed parsing of backend JSON responses
2. Tolerance for fields the backend adds over time (extra fields ignored)
3. A single place where the backend's camelCase names are mapped
"""

from __future__ import annotations

from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field, field_validator, model_validator

T = TypeVar("T")

# Status and health sentinels reported by the backend
STATUS_READY = "Ready"
STATUS_FAILED = "Failed"
STATUS_FAILURE = "Failure"
HEALTH_HEALTHY = "Healthy"
HEALTH_UNHEALTHY = "Unhealthy"


# =============================================================================
# Projects
# =============================================================================


class ProjectRecord(BaseModel):
    """One entry of the project list."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    id: int
    name: str = ""
    status: str = ""
    health: str = ""
    is_kubernetes: bool = Field(False, alias="isKubernetes")
    is_locked: bool = Field(False, alias="isLocked")
    is_virtual_cluster: bool = Field(False, alias="isVirtualCluster")
    parent_project_id: int | None = Field(None, alias="parentProjectId")

    @field_validator("status", "health", mode="before")
    @classmethod
    def none_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v


class ProjectList(BaseModel):
    """Response of the filtered project list."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    data: list[ProjectRecord] = Field(default_factory=list)
    total_count: int = Field(0, alias="totalCount")


def project_readiness_reason(project: ProjectRecord) -> str | None:
    """Explain why a project cannot host a virtual cluster.

    Returns None when the project is a healthy, unlocked Kubernetes
    project that is not itself a virtual cluster.
    """
    if not project.is_kubernetes:
        return "Not a Kubernetes project"
    if project.status != STATUS_READY:
        return f"Status is {project.status} (must be {STATUS_READY})"
    if project.health != HEALTH_HEALTHY:
        return f"Health is {project.health} (must be {HEALTH_HEALTHY})"
    if project.is_locked:
        return "Project is locked (read-only)"
    if project.is_virtual_cluster:
        return "Virtual clusters cannot host other virtual clusters"
    return None


# =============================================================================
# Virtual Clusters
# =============================================================================


class VirtualClusterRecord(BaseModel):
    """One entry of a parent project's virtual cluster list."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    id: int | None = None
    name: str
    status: str = ""
    health: str = ""

    @field_validator("status", "health", mode="before")
    @classmethod
    def none_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v


class VirtualClusterList(BaseModel):
    """Response of the virtual cluster list for a parent project."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    data: list[VirtualClusterRecord] = Field(default_factory=list)
    total_count: int = Field(0, alias="totalCount")


# =============================================================================
# Applications
# =============================================================================


class ProjectAppDetails(BaseModel):
    """Details of one application instance."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    id: int | None = None
    name: str | None = None
    namespace: str | None = None
    status: str = Field(min_length=1)


# =============================================================================
# Servers
# =============================================================================


class ServerRecord(BaseModel):
    """One server of a project."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    id: int | None = None
    name: str = ""
    role: str = ""
    flavor: str = ""
    status: str = ""
    ip_address: str | None = Field(None, alias="ipAddress")

    @field_validator("name", "role", "flavor", "status", mode="before")
    @classmethod
    def none_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v


class ServerList(BaseModel):
    """Response of the per-project server details."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    data: list[ServerRecord] = Field(default_factory=list)


# =============================================================================
# Kubernetes list items
# =============================================================================


class KubernetesItem(BaseModel):
    """Fields shared by every Kubernetes list item."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    name: str = ""
    namespace: str = ""
    created_at: str = Field("", alias="createdAt")

    @model_validator(mode="before")
    @classmethod
    def drop_nulls(cls, data: Any) -> Any:
        # Null fields fall back to their defaults
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v is not None}
        return data


class PodItem(KubernetesItem):
    state: str = ""
    ready: str = ""
    restart_count: int = Field(0, alias="restartCount")
    node: str = ""
    ip: str = ""


class DeploymentItem(KubernetesItem):
    state: str = ""
    ready: str = ""
    images: list[str] = Field(default_factory=list)


class StatefulSetItem(DeploymentItem):
    pass


class ServiceItem(KubernetesItem):
    type: str = ""
    cluster_ip: str = Field("", alias="clusterIp")
    external_ip: str = Field("", alias="externalIp")


class NodeItem(KubernetesItem):
    state: str = ""
    role: str = ""
    version: str = ""
    ip: str = ""


class ConfigMapItem(KubernetesItem):
    pass


class SecretItem(KubernetesItem):
    type: str = ""


class IngressItem(KubernetesItem):
    target: str = ""
    default: str = ""
    ingress_class: str = Field("", alias="ingressClass")


class DaemonSetItem(KubernetesItem):
    status: str = ""
    desired: int = 0
    current: int = 0
    ready: int = 0
    available: str = ""
    image: str = ""


class PersistentVolumeClaimItem(KubernetesItem):
    status: str = ""
    volume: str = ""
    capacity: str = ""
    access_modes: str = Field("", alias="accessModes")
    storage_class: str = Field("", alias="storageClass")


# =============================================================================
# Cursor pages
# =============================================================================


class CursorEnvelope(BaseModel, Generic[T]):
    """Cursor-paged list envelope used by the Kubernetes list endpoints."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    data: list[T] = Field(default_factory=list)
    limit: int | None = None
    has_more: bool = Field(False, alias="hasMore")
    total_count: int = Field(0, alias="totalCount")
    next_cursor: str | None = Field(None, alias="nextCursor")

    @field_validator("data", mode="before")
    @classmethod
    def none_to_list(cls, v: Any) -> Any:
        return [] if v is None else v
