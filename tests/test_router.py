"""Tests for the navigation state machine: loads, ordering, redirects, errors."""

import anyio
import pytest

from waypoint import Route, create_memory_history, create_router
from waypoint.config import RouterConfig
from waypoint.errors import ContextMisuseError, ErrorResponse, LoaderError, RedirectLoopError
from waypoint.history.location import Action
from waypoint.navigation.results import redirect, redirect_document, replace
from waypoint.navigation.state import Revalidation, Status
from waypoint.testing import Deferred, StateRecorder, create_test_router


class Loads:
    """Loader factory that records which route ran."""

    def __init__(self) -> None:
        self.calls: list[str] = []

    def __call__(self, name, value=None):
        def loader(args):
            self.calls.append(name)
            return name if value is None else value

        return loader


def course_routes(loads: Loads) -> list[Route]:
    return [
        Route(
            path="/",
            id="root",
            loader=loads("root"),
            children=[
                Route(index=True, id="home"),
                Route(path="courses", id="courses", children=[Route(path=":id", id="course", loader=loads("course"))]),
            ],
        ),
    ]


class TestLifecycle:
    def test_initialize_outside_context_raises(self) -> None:
        router = create_router([Route(path="/")], create_memory_history())
        with pytest.raises(ContextMisuseError):
            router.initialize()

    def test_routes_without_loaders_start_initialized(self) -> None:
        router = create_router([Route(path="/", id="root")], create_memory_history())
        assert router.state.initialized
        assert [m.route.id for m in router.state.matches] == ["root"]

    @pytest.mark.anyio
    async def test_initial_load_runs_loaders(self) -> None:
        loads = Loads()
        async with create_test_router(course_routes(loads)) as router:
            state = router.state
            assert state.initialized
            assert state.loader_data == {"root": "root"}
            assert state.navigation.state is Status.IDLE
            assert state.history_action is Action.POP
        assert loads.calls == ["root"]

    @pytest.mark.anyio
    async def test_uninitialized_until_initialize(self) -> None:
        loads = Loads()
        async with create_test_router(course_routes(loads), initialize=False) as router:
            assert not router.state.initialized
            assert router.state.loader_data == {}
            router.initialize()
            await router.settled()
            assert router.state.initialized
            assert router.state.loader_data == {"root": "root"}

    @pytest.mark.anyio
    async def test_subscribers_receive_snapshots_in_order(self) -> None:
        loads = Loads()
        async with create_test_router(course_routes(loads)) as router:
            seen = []
            unsubscribe = router.subscribe(lambda state: seen.append((state.navigation.state, state.location.pathname)))
            await router.navigate("/courses/1")
            assert seen == [(Status.LOADING, "/"), (Status.IDLE, "/courses/1")]

            unsubscribe()
            await router.navigate("/courses/2")
            assert len(seen) == 2

    @pytest.mark.anyio
    async def test_leaving_context_disposes(self) -> None:
        loads = Loads()
        async with create_test_router(course_routes(loads)) as router:
            recorder = StateRecorder().attach(router)
        router.history.push("/courses/1")
        assert recorder.states == []
        assert router.state.location.pathname == "/"


class TestNavigate:
    @pytest.mark.anyio
    async def test_push_commits_location_and_data(self) -> None:
        loads = Loads()
        async with create_test_router(course_routes(loads)) as router:
            await router.navigate("/courses/42")

            state = router.state
            assert state.location.pathname == "/courses/42"
            assert [m.route.id for m in state.matches] == ["root", "courses", "course"]
            assert state.matches[-1].params == {"id": "42"}
            assert state.loader_data == {"root": "root", "course": "course"}
            assert state.history_action is Action.PUSH
            assert router.history.location.pathname == "/courses/42"
            assert [e.pathname for e in router.history.entries] == ["/", "/courses/42"]
        # The unchanged parent does not reload
        assert loads.calls == ["root", "course"]

    @pytest.mark.anyio
    async def test_replace(self) -> None:
        loads = Loads()
        async with create_test_router(course_routes(loads)) as router:
            await router.navigate("/courses/1", replace=True)
            assert router.state.history_action is Action.REPLACE
            assert [e.pathname for e in router.history.entries] == ["/courses/1"]

    @pytest.mark.anyio
    async def test_changed_params_reload_the_route(self) -> None:
        loads = Loads()
        async with create_test_router(course_routes(loads), ["/courses/1"]) as router:
            await router.navigate("/courses/2")
        assert loads.calls == ["root", "course", "course"]

    @pytest.mark.anyio
    async def test_search_change_reloads_every_route(self) -> None:
        loads = Loads()
        async with create_test_router(course_routes(loads), ["/courses/1"]) as router:
            await router.navigate("/courses/1?tab=reviews")
            assert router.state.location.search == "?tab=reviews"
        assert loads.calls == ["root", "course", "root", "course"]

    @pytest.mark.anyio
    async def test_hash_change_loads_nothing(self) -> None:
        loads = Loads()
        async with create_test_router(course_routes(loads), ["/courses/1"]) as router:
            recorder = StateRecorder().attach(router)
            await router.navigate("/courses/1#syllabus")
            assert router.state.location.hash == "#syllabus"
            assert recorder.navigation_states == [Status.IDLE]
        assert loads.calls == ["root", "course"]

    @pytest.mark.anyio
    async def test_should_revalidate_overrides_default(self) -> None:
        loads = Loads()
        seen = []

        def never(args):
            seen.append(args.default_should_revalidate)
            return False

        routes = [
            Route(
                path="/",
                id="root",
                loader=loads("root"),
                children=[Route(path="list", id="list", loader=loads("list"), should_revalidate=never)],
            ),
        ]
        async with create_test_router(routes, ["/list"]) as router:
            await router.navigate("/list?page=2")
        assert loads.calls == ["root", "list", "root"]
        assert seen == [True]

    @pytest.mark.anyio
    async def test_should_revalidate_non_bool_keeps_default(self) -> None:
        loads = Loads()
        routes = [Route(path="/", id="root", loader=loads("root"), should_revalidate=lambda args: None)]
        async with create_test_router(routes) as router:
            await router.navigate("/?q=1")
        assert loads.calls == ["root", "root"]

    @pytest.mark.anyio
    async def test_relative_navigation_from_route(self) -> None:
        loads = Loads()
        async with create_test_router(course_routes(loads), ["/courses/1"]) as router:
            await router.navigate("../2", from_route_id="course")
            assert router.state.location.pathname == "/courses/2"

    @pytest.mark.anyio
    async def test_navigation_state_argument_is_stored(self) -> None:
        loads = Loads()
        async with create_test_router(course_routes(loads)) as router:
            await router.navigate("/courses/1", state={"from": "home"})
            assert router.state.location.state == {"from": "home"}
            assert router.history.location.state == {"from": "home"}

    @pytest.mark.anyio
    async def test_unmatched_location_commits_not_found(self, caplog: pytest.LogCaptureFixture) -> None:
        loads = Loads()
        async with create_test_router(course_routes(loads)) as router:
            await router.navigate("/nowhere")
            state = router.state
            assert state.matches == ()
            assert state.not_found is not None
            assert state.not_found.pathname == "/nowhere"
            assert state.location.pathname == "/nowhere"
        assert 'No routes matched location "/nowhere"' in caplog.text

    @pytest.mark.anyio
    async def test_back_and_forward(self) -> None:
        loads = Loads()
        async with create_test_router(course_routes(loads), ["/", "/courses/1"]) as router:
            await router.navigate(-1)
            assert router.state.location.pathname == "/"
            assert router.state.history_action is Action.POP
            assert router.history.index == 0

            await router.navigate(1)
            assert router.state.location.pathname == "/courses/1"

            # Out of bounds is a no-op
            await router.navigate(5)
            assert router.state.location.pathname == "/courses/1"

    @pytest.mark.anyio
    async def test_external_history_change_is_followed(self) -> None:
        loads = Loads()
        async with create_test_router(course_routes(loads)) as router:
            router.history.push("/courses/7")
            await router.settled()
            assert router.state.location.pathname == "/courses/7"
            assert router.state.loader_data["course"] == "course"
            assert len(router.history.entries) == 2


class TestInterruptions:
    @pytest.mark.anyio
    async def test_last_navigation_wins(self) -> None:
        slow, fast = Deferred(), Deferred()
        routes = [
            Route(
                path="/",
                id="root",
                children=[
                    Route(path="slow", id="slow", loader=slow.loader),
                    Route(path="fast", id="fast", loader=fast.loader),
                ],
            ),
        ]
        async with create_test_router(routes) as router:
            recorder = StateRecorder().attach(router)
            async with anyio.create_task_group() as tg:
                tg.start_soon(router.navigate, "/slow")
                await slow.wait_started()
                tg.start_soon(router.navigate, "/fast")
                await fast.wait_started()

                fast.resolve("fast-data")
                with anyio.fail_after(5):
                    committed = await recorder.wait_for(lambda s: s.navigation.state is Status.IDLE)
                assert committed.location.pathname == "/fast"
                assert router.state.location.pathname == "/fast"

                # The superseded result arrives after the commit
                slow.resolve("slow-data")

            state = router.state
            assert state.location.pathname == "/fast"
            assert state.loader_data == {"fast": "fast-data"}
            assert recorder.committed_paths == ["/fast"]
            assert recorder.navigation_states == [Status.LOADING, Status.LOADING, Status.IDLE]
            assert slow.calls[0].request.signal.aborted
            assert not fast.calls[0].request.signal.aborted

    @pytest.mark.anyio
    async def test_superseded_result_arriving_first_is_dropped(self) -> None:
        slow, fast = Deferred(), Deferred()
        routes = [
            Route(path="/", id="root"),
            Route(path="/slow", id="slow", loader=slow.loader),
            Route(path="/fast", id="fast", loader=fast.loader),
        ]
        async with create_test_router(routes) as router:
            recorder = StateRecorder().attach(router)
            async with anyio.create_task_group() as tg:
                tg.start_soon(router.navigate, "/slow")
                await slow.wait_started()
                tg.start_soon(router.navigate, "/fast")
                await fast.wait_started()

                slow.resolve("slow-data")
                await anyio.wait_all_tasks_blocked()
                assert router.state.location.pathname == "/"

                fast.resolve("fast-data")

            assert router.state.location.pathname == "/fast"
            assert recorder.committed_paths == ["/fast"]

    @pytest.mark.anyio
    async def test_revalidate_reruns_active_loaders(self) -> None:
        loads = Loads()
        async with create_test_router(course_routes(loads), ["/courses/1"]) as router:
            recorder = StateRecorder().attach(router)
            await router.revalidate()

            assert [s.revalidation for s in recorder.states] == [Revalidation.LOADING, Revalidation.IDLE]
            assert all(status is Status.IDLE for status in recorder.navigation_states)
            assert router.state.location.pathname == "/courses/1"
            assert len(router.history.entries) == 1
        assert loads.calls == ["root", "course", "root", "course"]

    @pytest.mark.anyio
    async def test_revalidate_during_navigation_reloads_everything(self) -> None:
        loads = Loads()
        gate = Deferred()
        routes = [
            Route(
                path="/",
                id="root",
                loader=loads("root"),
                children=[Route(path="slow", id="slow", loader=gate.loader)],
            ),
        ]
        async with create_test_router(routes) as router:
            async with anyio.create_task_group() as tg:
                tg.start_soon(router.navigate, "/slow")
                await gate.wait_started()
                tg.start_soon(router.revalidate)
                await anyio.wait_all_tasks_blocked()
                gate.resolve("slow-data")

            assert router.state.location.pathname == "/slow"
            assert router.state.revalidation is Revalidation.IDLE
            assert len(gate.calls) == 2
        # The root reloads because a revalidation was requested
        assert loads.calls == ["root", "root"]


class TestRedirects:
    def routes(self, old_loader) -> list[Route]:
        return [
            Route(
                path="/",
                id="root",
                children=[
                    Route(path="old", id="old", loader=old_loader),
                    Route(path="new", id="new", loader=lambda args: "new-data"),
                ],
            ),
        ]

    @pytest.mark.anyio
    async def test_redirect_has_no_intermediate_commit(self) -> None:
        async with create_test_router(self.routes(lambda args: redirect("/new"))) as router:
            recorder = StateRecorder().attach(router)
            await router.navigate("/old")

            assert router.state.location.pathname == "/new"
            assert router.state.loader_data == {"new": "new-data"}
            assert recorder.committed_paths == ["/new"]
            assert [s.navigation.location.pathname for s in recorder.states[:-1]] == ["/old", "/new"]
            assert [e.pathname for e in router.history.entries] == ["/", "/new"]

    @pytest.mark.anyio
    async def test_raised_redirect(self) -> None:
        def old_loader(args):
            raise redirect("/new")

        async with create_test_router(self.routes(old_loader)) as router:
            await router.navigate("/old")
            assert router.state.location.pathname == "/new"

    @pytest.mark.anyio
    async def test_replace_redirect(self) -> None:
        async with create_test_router(self.routes(lambda args: replace("/new"))) as router:
            await router.navigate("/old")
            assert router.state.history_action is Action.REPLACE
            assert [e.pathname for e in router.history.entries] == ["/new"]

    @pytest.mark.anyio
    async def test_relative_redirect_resolves_against_route(self) -> None:
        async with create_test_router(self.routes(lambda args: redirect("../new?from=old"))) as router:
            await router.navigate("/old")
            assert router.state.location.path == "/new?from=old"

    @pytest.mark.anyio
    async def test_redirect_loop_is_cut_off(self) -> None:
        calls = []

        def loop(args):
            calls.append(args.request.pathname)
            return redirect("/loop")

        routes = [Route(path="/", id="root", children=[Route(path="loop", id="loop", loader=loop)])]
        async with create_test_router(routes, config=RouterConfig(max_redirects=3)) as router:
            await router.navigate("/loop")

            error = router.state.errors["root"]
            assert isinstance(error, RedirectLoopError)
            assert error.hops == 3
            assert [m.route.id for m in router.state.matches] == ["root"]
        assert len(calls) == 4

    @pytest.mark.anyio
    async def test_external_redirect_assigns_document(self) -> None:
        async with create_test_router(self.routes(lambda args: redirect("https://example.com/login"))) as router:
            await router.navigate("/old")
            assert router.history.assigned == ["https://example.com/login"]
            assert router.state.location.pathname == "/"
            assert router.state.navigation.state is Status.IDLE

    @pytest.mark.anyio
    async def test_same_origin_absolute_redirect_stays_in_app(self) -> None:
        async with create_test_router(self.routes(lambda args: redirect("http://localhost/new"))) as router:
            await router.navigate("/old")
            assert router.state.location.pathname == "/new"
            assert router.history.assigned == []

    @pytest.mark.anyio
    async def test_reload_document_redirect(self) -> None:
        async with create_test_router(self.routes(lambda args: redirect_document("/new"))) as router:
            await router.navigate("/old")
            assert router.history.assigned == ["http://localhost/new"]

    @pytest.mark.anyio
    async def test_redirect_target_gets_basename(self) -> None:
        routes = self.routes(lambda args: redirect("/new"))
        async with create_test_router(routes, ["/app"], config=RouterConfig(basename="/app")) as router:
            await router.navigate("/old")
            assert router.state.location.pathname == "/app/new"

    @pytest.mark.anyio
    async def test_redirect_cancels_sibling_loaders(self) -> None:
        pending = Deferred()
        routes = [
            Route(path="/", id="root"),
            Route(path="/login", id="login"),
            Route(
                path="/app",
                id="app",
                loader=lambda args: redirect("/login"),
                children=[Route(path="dash", id="dash", loader=pending.loader)],
            ),
        ]
        async with create_test_router(routes) as router:
            with anyio.fail_after(5):
                await router.navigate("/app/dash")
            assert router.state.location.pathname == "/login"
            assert not pending.settled


class TestErrors:
    def routes(self, **boundaries) -> list[Route]:
        def explode(args):
            raise ValueError("boom")

        return [
            Route(
                path="/",
                id="root",
                error_boundary=boundaries.get("root"),
                children=[
                    Route(
                        path="a",
                        id="a",
                        loader=lambda args: "a-data",
                        error_boundary=boundaries.get("a"),
                        children=[Route(path="b", id="b", loader=explode)],
                    ),
                ],
            ),
        ]

    @pytest.mark.anyio
    async def test_error_without_boundary_lands_on_root(self) -> None:
        async with create_test_router(self.routes()) as router:
            await router.navigate("/a/b")

            state = router.state
            error = state.errors["root"]
            assert isinstance(error, LoaderError)
            assert error.route_id == "b"
            assert isinstance(error.__cause__, ValueError)
            assert [m.route.id for m in state.matches] == ["root"]
            assert state.loader_data == {}
            assert state.location.pathname == "/a/b"

    @pytest.mark.anyio
    async def test_nearest_boundary_keeps_its_data(self) -> None:
        async with create_test_router(self.routes(root="RootError", a="AError")) as router:
            await router.navigate("/a/b")

            state = router.state
            assert list(state.errors) == ["a"]
            assert [m.route.id for m in state.matches] == ["root", "a"]
            assert state.loader_data == {"a": "a-data"}

    @pytest.mark.anyio
    async def test_error_response_is_committed_as_is(self) -> None:
        missing = ErrorResponse(404, "Not Found", data="no such course")

        def loader(args):
            raise missing

        routes = [Route(path="/", id="root", children=[Route(path="c", id="c", loader=loader, error_boundary=True)])]
        async with create_test_router(routes) as router:
            await router.navigate("/c")
            assert router.state.errors["c"] is missing

    @pytest.mark.anyio
    async def test_next_navigation_clears_errors(self) -> None:
        async with create_test_router(self.routes()) as router:
            await router.navigate("/a/b")
            await router.navigate("/a")
            assert router.state.errors is None
            assert router.state.loader_data == {"a": "a-data"}

    @pytest.mark.anyio
    async def test_initial_load_error(self) -> None:
        async with create_test_router(self.routes(a=True), ["/a/b"]) as router:
            assert router.state.initialized
            assert isinstance(router.state.errors["a"], LoaderError)
