"""Tests for cursor-to-window pagination."""

import pytest
from controlplane_mock import ScriptedClient, json_response

from orchestrator.client import TransportError
from orchestrator.models import DaemonSetItem, DeploymentItem, PodItem
from orchestrator.pagination import (
    KubernetesListSource,
    KubernetesResource,
    Page,
    PaginationProtocolError,
    WindowRequest,
    fetch_window,
    list_namespaces,
    slice_window,
)


class ListSource:
    """In-memory cursor source serving fixed-size pages of 0..total-1.

    The cursor is the index of the next item. The page size is fixed by
    the backend and independent of the requested per_page.
    """

    def __init__(self, total: int, page_size: int) -> None:
        self.total = total
        self.page_size = page_size
        self.requests: list[tuple[str | None, int, str | None]] = []

    def fetch_page(self, cursor: str | None, per_page: int, search: str | None) -> Page[int]:
        self.requests.append((cursor, per_page, search))
        start = int(cursor) if cursor else 0
        end = min(start + self.page_size, self.total)
        has_more = end < self.total
        return Page(
            items=list(range(start, end)),
            has_more=has_more,
            next_cursor=str(end) if has_more else None,
            total_count=self.total,
        )


class ScriptedSource:
    """Cursor source returning scripted pages in order."""

    def __init__(self, *pages: Page[int]) -> None:
        self._pages = list(pages)
        self.calls = 0

    def fetch_page(self, cursor: str | None, per_page: int, search: str | None) -> Page[int]:
        self.calls += 1
        return self._pages.pop(0)


class TestWindowRequest:
    """Tests for window validation."""

    def test_negative_offset_rejected(self) -> None:
        """Test that a negative offset raises error."""
        with pytest.raises(ValueError):
            WindowRequest(offset=-1)

    def test_negative_limit_rejected(self) -> None:
        """Test that a negative limit raises error."""
        with pytest.raises(ValueError):
            WindowRequest(limit=-5)


class TestFetchWindow:
    """Tests for fetch_window."""

    @pytest.mark.parametrize(
        ("total", "page_size", "offset", "limit"),
        [
            (0, 5, 0, 0),
            (12, 5, 0, 0),
            (12, 5, 3, 4),
            (12, 5, 4, 3),
            (12, 5, 10, 10),
            (12, 5, 12, 3),
            (12, 5, 20, 3),
            (7, 7, 0, 7),
            (100, 50, 49, 2),
        ],
    )
    def test_matches_slice_of_full_list(self, total: int, page_size: int, offset: int, limit: int) -> None:
        """Test that the window equals slicing the concatenated pages."""
        source = ListSource(total, page_size)
        expected = list(range(total))[offset:]
        if limit:
            expected = expected[:limit]

        assert fetch_window(source, WindowRequest(offset=offset, limit=limit)) == expected

    def test_unbounded_window_uses_default_page_size(self) -> None:
        """Test that limit 0 requests pages of the default size."""
        source = ListSource(3, 5)

        fetch_window(source, WindowRequest())

        assert source.requests == [(None, 50, None)]

    def test_limit_is_page_size(self) -> None:
        """Test that a bounded window requests pages of its limit."""
        source = ListSource(30, 10)

        fetch_window(source, WindowRequest(offset=5, limit=8, search="api"))

        assert source.requests[0] == (None, 8, "api")

    def test_stops_once_window_is_full(self) -> None:
        """Test that no further pages are fetched after the window fills."""
        source = ListSource(1000, 10)

        items = fetch_window(source, WindowRequest(offset=3, limit=4))

        assert items == [3, 4, 5, 6]
        assert len(source.requests) == 1

    def test_offset_spanning_pages(self) -> None:
        """Test that whole pages are skipped for a large offset."""
        source = ListSource(30, 10)

        items = fetch_window(source, WindowRequest(offset=25, limit=3))

        assert items == [25, 26, 27]
        assert [r[0] for r in source.requests] == [None, "10", "20"]

    def test_offset_beyond_total(self) -> None:
        """Test that an offset past the end yields an empty list."""
        assert fetch_window(ListSource(4, 2), WindowRequest(offset=10, limit=2)) == []

    def test_stops_when_has_more_is_false(self) -> None:
        """Test that a final page ends pagination even with a cursor."""
        source = ScriptedSource(Page(items=[1, 2], has_more=False, next_cursor="ignored"))

        assert fetch_window(source, WindowRequest()) == [1, 2]
        assert source.calls == 1

    def test_empty_cursor_with_more_pages(self) -> None:
        """Test that has_more without a cursor is a protocol error."""
        source = ScriptedSource(Page(items=[1], has_more=True, next_cursor=""))

        with pytest.raises(PaginationProtocolError):
            fetch_window(source, WindowRequest())

    def test_repeated_cursor(self) -> None:
        """Test that a cursor loop is a protocol error instead of spinning."""
        source = ScriptedSource(
            Page(items=[1], has_more=True, next_cursor="a"),
            Page(items=[2], has_more=True, next_cursor="b"),
            Page(items=[3], has_more=True, next_cursor="a"),
        )

        with pytest.raises(PaginationProtocolError) as exc_info:
            fetch_window(source, WindowRequest())

        assert "repeated" in str(exc_info.value)
        assert source.calls == 3

    def two_pages(self) -> ScriptedSource:
        return ScriptedSource(
            Page(items=list(range(1, 51)), has_more=True, next_cursor="a"),
            Page(items=list(range(51, 71)), has_more=False),
        )

    def test_window_within_first_page(self) -> None:
        """Test that a window inside the first page fetches one page."""
        source = self.two_pages()

        assert fetch_window(source, WindowRequest(offset=10, limit=30)) == list(range(11, 41))
        assert source.calls == 1

    def test_window_in_second_page(self) -> None:
        """Test that an offset past the first page fetches both pages."""
        source = self.two_pages()

        assert fetch_window(source, WindowRequest(offset=55, limit=10)) == list(range(56, 66))
        assert source.calls == 2

    def test_window_past_both_pages(self) -> None:
        """Test that an offset past both pages is empty, not an error."""
        assert fetch_window(self.two_pages(), WindowRequest(offset=1000, limit=10)) == []

    def test_protocol_error_is_transport_error(self) -> None:
        """Test that protocol violations are reported as transport errors."""
        assert issubclass(PaginationProtocolError, TransportError)


class TestSliceWindow:
    """Tests for in-memory windows."""

    def test_offset_and_limit(self) -> None:
        """Test a bounded window."""
        assert slice_window(["a", "b", "c", "d"], WindowRequest(offset=1, limit=2)) == ["b", "c"]

    def test_unbounded(self) -> None:
        """Test that limit 0 returns the rest of the list."""
        assert slice_window(["a", "b", "c"], WindowRequest(offset=1)) == ["b", "c"]

    def test_offset_past_end(self) -> None:
        """Test that an offset past the end yields an empty list."""
        assert slice_window(["a"], WindowRequest(offset=5, limit=1)) == []

    def test_search_before_offset(self) -> None:
        """Test that the search filters case-insensitively before slicing."""
        names = ["default", "kube-system", "Kube-public", "monitoring"]

        assert slice_window(names, WindowRequest(offset=1, search="KUBE")) == ["Kube-public"]


class TestKubernetesListSource:
    """Tests for the Kubernetes list endpoint source."""

    def test_fetch_page(self, client: ScriptedClient) -> None:
        """Test that the envelope is mapped onto a page."""
        client.respond(
            "GET",
            "/api/v1/kubernetes/list/4/pods",
            json_response(
                {
                    "data": [{"name": "api-0", "namespace": "default"}],
                    "limit": 1,
                    "hasMore": True,
                    "totalCount": 2,
                    "nextCursor": "c2",
                }
            ),
        )

        page = KubernetesListSource(client, 4, KubernetesResource.PODS).fetch_page("c1", 1, "api")

        assert page.items == [PodItem(name="api-0", namespace="default")]
        assert page.has_more is True
        assert page.next_cursor == "c2"
        assert page.total_count == 2
        assert client.commands[0].params == {"Limit": 1, "Cursor": "c1", "SearchTerm": "api"}

    def test_items_are_typed_per_resource(self, client: ScriptedClient) -> None:
        """Test that each list validates into its own item model."""
        client.respond(
            "GET",
            "/api/v1/kubernetes/list/4/pods",
            json_response(
                {
                    "data": [
                        {
                            "name": "api-0",
                            "namespace": "default",
                            "state": "Running",
                            "ready": "1/1",
                            "restartCount": 3,
                            "node": "worker-1",
                            "ip": None,
                            "createdAt": "2024-05-01T10:00:00Z",
                            "labels": {"app": "api"},
                        }
                    ],
                    "hasMore": False,
                }
            ),
        )
        client.respond(
            "GET",
            "/api/v1/kubernetes/list/4/deployments",
            json_response({"data": [{"name": "api", "images": ["nginx:1.25", "envoy:1.30"]}], "hasMore": False}),
        )
        client.respond(
            "GET",
            "/api/v1/kubernetes/list/4/daemonset",
            json_response({"data": [{"name": "agent", "desired": 3, "ready": 2, "available": "2"}], "hasMore": False}),
        )

        pod = KubernetesListSource(client, 4, KubernetesResource.PODS).fetch_page(None, 50, None).items[0]
        deployment = KubernetesListSource(client, 4, KubernetesResource.DEPLOYMENTS).fetch_page(None, 50, None).items[0]
        daemon_set = KubernetesListSource(client, 4, KubernetesResource.DAEMON_SETS).fetch_page(None, 50, None).items[0]

        assert isinstance(pod, PodItem)
        assert pod.restart_count == 3
        assert pod.created_at == "2024-05-01T10:00:00Z"
        assert pod.ip == ""
        assert isinstance(deployment, DeploymentItem)
        assert deployment.images == ["nginx:1.25", "envoy:1.30"]
        assert isinstance(daemon_set, DaemonSetItem)
        assert (daemon_set.desired, daemon_set.ready, daemon_set.current) == (3, 2, 0)

    def test_malformed_item(self, client: ScriptedClient) -> None:
        """Test that an item that does not fit its model raises TransportError."""
        client.respond(
            "GET",
            "/api/v1/kubernetes/list/4/pods",
            json_response({"data": [{"name": "api-0", "restartCount": "many"}], "hasMore": False}),
        )

        with pytest.raises(TransportError) as exc_info:
            KubernetesListSource(client, 4, KubernetesResource.PODS).fetch_page(None, 50, None)

        assert exc_info.value.operation == "list pods"

    def test_null_data(self, client: ScriptedClient) -> None:
        """Test that a null item list is an empty page."""
        client.respond(
            "GET",
            "/api/v1/kubernetes/list/4/sts",
            json_response({"data": None, "hasMore": False, "totalCount": 0, "nextCursor": None}),
        )

        page = KubernetesListSource(client, 4, KubernetesResource.STATEFUL_SETS).fetch_page(None, 50, None)

        assert page.items == []
        assert page.has_more is False

    def test_error_status(self, client: ScriptedClient) -> None:
        """Test that an error status raises TransportError."""
        client.respond("GET", "/api/v1/kubernetes/list/4/nodes", json_response({"title": "Unauthorized"}, 401))

        with pytest.raises(TransportError) as exc_info:
            KubernetesListSource(client, 4, KubernetesResource.NODES).fetch_page(None, 50, None)

        assert "Unauthorized" in str(exc_info.value)

    def test_namespaces_not_cursor_paged(self, client: ScriptedClient) -> None:
        """Test that namespaces cannot be used as a cursor source."""
        with pytest.raises(ValueError):
            KubernetesListSource(client, 4, KubernetesResource.NAMESPACES)

    def test_walks_cursor_chain(self, client: ScriptedClient) -> None:
        """Test fetch_window over the endpoint across two pages."""
        client.respond(
            "GET",
            "/api/v1/kubernetes/list/4/configmap",
            json_response({"data": [{"name": "a"}, {"name": "b"}], "hasMore": True, "nextCursor": "n1"}),
            json_response({"data": [{"name": "c"}, {"name": "d"}], "hasMore": False}),
        )
        source = KubernetesListSource(client, 4, KubernetesResource.CONFIG_MAPS)

        items = fetch_window(source, WindowRequest(offset=1, limit=2))

        assert [item.name for item in items] == ["b", "c"]
        assert client.commands[1].params["Cursor"] == "n1"


class TestListNamespaces:
    """Tests for list_namespaces."""

    def test_list(self, client: ScriptedClient) -> None:
        """Test that the namespace names are returned."""
        client.respond("GET", "/api/v1/kubernetes/4/namespaces", json_response(["default", "kube-system"]))

        assert list_namespaces(client, 4) == ["default", "kube-system"]

    def test_unexpected_shape(self, client: ScriptedClient) -> None:
        """Test that a non-list body raises TransportError."""
        client.respond("GET", "/api/v1/kubernetes/4/namespaces", json_response({"data": []}))

        with pytest.raises(TransportError):
            list_namespaces(client, 4)
