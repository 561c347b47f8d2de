"""Tests for waypoint.routing.route — route definitions and compilation."""

import pytest

from waypoint.errors import ConfigurationError
from waypoint.routing.route import NO_PAYLOAD, DataRoute, PayloadKind, Route, compile_routes, resolve_payload


class TestRoute:
    def test_children_coerced_to_tuple(self) -> None:
        route = Route(path="a", children=[{"path": "b"}])
        assert isinstance(route.children, tuple)
        assert route.children[0] == Route(path="b")

    def test_from_mapping(self) -> None:
        route = Route.from_mapping({"path": "courses", "index": False})
        assert route.path == "courses"

    def test_from_mapping_rejects_unknown_fields(self) -> None:
        with pytest.raises(ConfigurationError, match="Unknown route field"):
            Route.from_mapping({"path": "a", "Component": object()})

    def test_frozen(self) -> None:
        route = Route(path="a")
        with pytest.raises(AttributeError):
            route.path = "b"  # type: ignore[misc]


class TestCompileRoutes:
    def test_positional_ids(self) -> None:
        manifest: dict[str, DataRoute] = {}
        routes = compile_routes(
            [Route(path="/", children=(Route(path="a"), Route(path="b", children=(Route(index=True),))))],
            manifest,
        )
        assert routes[0].id == "0"
        assert [c.id for c in routes[0].children] == ["0-0", "0-1"]
        assert routes[0].children[1].children[0].id == "0-1-0"
        assert set(manifest) == {"0", "0-0", "0-1", "0-1-0"}

    def test_explicit_ids_kept(self) -> None:
        routes = compile_routes([Route(path="/", id="root")], {})
        assert routes[0].id == "root"

    def test_id_collision(self) -> None:
        with pytest.raises(ConfigurationError, match="route id collision"):
            compile_routes([Route(path="a", id="x"), Route(path="b", id="x")], {})

    def test_index_route_with_children(self) -> None:
        with pytest.raises(ConfigurationError, match="index route"):
            compile_routes([Route(index=True, children=(Route(path="a"),))], {})

    def test_accepts_mappings(self) -> None:
        routes = compile_routes([{"path": "/", "children": [{"path": "a"}]}], {})
        assert routes[0].children[0].path == "a"

    def test_error_boundary_flag(self) -> None:
        routes = compile_routes([Route(path="/", error_boundary=True), Route(path="/b")], {})
        assert routes[0].has_error_boundary is True
        assert routes[1].has_error_boundary is False


class TestRenderPayload:
    def test_component(self) -> None:
        component = object()
        payload = resolve_payload(component, None, None)
        assert payload.kind is PayloadKind.COMPONENT
        assert payload.value is component

    def test_element(self) -> None:
        assert resolve_payload(None, "<p>", None).kind is PayloadKind.ELEMENT

    def test_lazy(self) -> None:
        assert resolve_payload(None, None, lambda: {}).kind is PayloadKind.LAZY

    def test_none(self) -> None:
        assert resolve_payload(None, None, None) is NO_PAYLOAD

    def test_component_and_element_conflict(self) -> None:
        with pytest.raises(ConfigurationError, match="either `component` or `element`"):
            compile_routes([Route(path="/", component=object(), element="<p>")], {})

    def test_resolved_at_compile(self) -> None:
        routes = compile_routes([Route(path="/", element="<p>")], {})
        assert routes[0].payload.kind is PayloadKind.ELEMENT

    def test_refresh_after_lazy(self) -> None:
        route = compile_routes([Route(path="/", lazy=lambda: {})], {})[0]
        assert route.payload.kind is PayloadKind.LAZY
        route.lazy = None
        route.component = "Page"
        route.refresh_payload()
        assert route.payload.kind is PayloadKind.COMPONENT
