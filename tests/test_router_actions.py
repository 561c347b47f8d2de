"""Tests for submissions: navigation actions and keyed fetchers."""

import functools

import anyio
import pytest

from waypoint import Route
from waypoint.errors import ActionError, ErrorResponse
from waypoint.history.location import Action
from waypoint.navigation.results import Redirect, redirect
from waypoint.navigation.state import IDLE_FETCHER, Revalidation, Status
from waypoint.navigation.submission import FormData
from waypoint.testing import Deferred, StateRecorder, create_test_router


class Recorder:
    """Loader/action factory that records calls per route."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []

    def loader(self, name, value=None):
        def handler(args):
            self.calls.append((name, args.request.method))
            return name if value is None else value

        return handler

    def loads_of(self, name: str) -> int:
        return sum(1 for called, _ in self.calls if called == name)


def create_course(args):
    return {"created": args.request.form_data["title"]}


def routes_for(rec: Recorder, *, action=create_course, boundary=None) -> list[Route]:
    return [
        Route(
            path="/",
            id="root",
            loader=rec.loader("root"),
            children=[
                Route(
                    path="courses",
                    id="courses",
                    loader=rec.loader("courses"),
                    action=action,
                    error_boundary=boundary,
                    children=[Route(path=":id", id="course", loader=rec.loader("course"))],
                ),
                Route(path="about", id="about"),
            ],
        ),
    ]


class TestNavigationActions:
    @pytest.mark.anyio
    async def test_submission_runs_action_then_revalidates(self) -> None:
        rec = Recorder()
        async with create_test_router(routes_for(rec), ["/courses"]) as router:
            recorder = StateRecorder().attach(router)
            await router.navigate("/courses", form_method="post", form_data={"title": "Intro"})

            state = router.state
            assert recorder.navigation_states == [Status.SUBMITTING, Status.LOADING, Status.IDLE]
            assert recorder.states[0].navigation.form_data == FormData.from_pairs([("title", "Intro")])
            assert recorder.states[1].action_data == {"courses": {"created": "Intro"}}
            assert state.action_data == {"courses": {"created": "Intro"}}
            assert state.navigation.state is Status.IDLE
            # Loaders reload with GET after the action
            assert rec.calls[-2:] == [("root", "GET"), ("courses", "GET")]

    @pytest.mark.anyio
    async def test_submission_to_current_url_replaces(self) -> None:
        rec = Recorder()
        async with create_test_router(routes_for(rec), ["/", "/courses"]) as router:
            await router.navigate("/courses", form_method="post", form_data={"title": "Intro"})
            assert router.state.history_action is Action.REPLACE
            assert [e.pathname for e in router.history.entries] == ["/", "/courses"]

    @pytest.mark.anyio
    async def test_submission_to_other_url_pushes(self) -> None:
        rec = Recorder()
        async with create_test_router(routes_for(rec), ["/about"]) as router:
            await router.navigate("/courses", form_method="post", form_data={"title": "Intro"})
            assert router.state.history_action is Action.PUSH
            assert router.state.location.pathname == "/courses"

    @pytest.mark.anyio
    async def test_action_data_is_cleared_by_next_navigation(self) -> None:
        rec = Recorder()
        async with create_test_router(routes_for(rec), ["/courses"]) as router:
            await router.navigate("/courses", form_method="post", form_data={"title": "Intro"})
            await router.navigate("/about")
            assert router.state.action_data is None

    @pytest.mark.anyio
    async def test_json_submission(self) -> None:
        received = []

        def action(args):
            received.append((args.request.method, args.request.json))
            return "ok"

        rec = Recorder()
        async with create_test_router(routes_for(rec, action=action), ["/courses"]) as router:
            await router.navigate("/courses", form_method="put", json={"title": "Intro"})
        assert received == [("PUT", {"title": "Intro"})]

    @pytest.mark.anyio
    async def test_get_submission_moves_fields_to_search(self) -> None:
        rec = Recorder()
        async with create_test_router(routes_for(rec)) as router:
            await router.navigate("/courses", form_method="get", form_data={"q": "python"})
            assert router.state.location.path == "/courses?q=python"
            assert router.state.action_data is None

    @pytest.mark.anyio
    async def test_missing_action_is_405(self) -> None:
        rec = Recorder()
        async with create_test_router(routes_for(rec), ["/about"]) as router:
            await router.navigate("/about", form_method="post", form_data={"x": "1"})

            error = router.state.errors["root"]
            assert isinstance(error, ErrorResponse)
            assert error.status == 405
            assert error.internal
            # An errored submission keeps the previous entry reachable
            assert router.state.history_action is Action.PUSH
            assert len(router.history.entries) == 2

    @pytest.mark.anyio
    async def test_invalid_method_is_405(self) -> None:
        rec = Recorder()
        async with create_test_router(routes_for(rec)) as router:
            await router.navigate("/courses", form_method="brew", form_data={"x": "1"})
            assert router.state.errors["root"].status == 405

    @pytest.mark.anyio
    async def test_action_error_lands_on_boundary(self) -> None:
        def failing(args):
            raise RuntimeError("db down")

        rec = Recorder()
        async with create_test_router(routes_for(rec, action=failing, boundary=True), ["/courses"]) as router:
            await router.navigate("/courses", form_method="post", form_data={"title": "Intro"})

            error = router.state.errors["courses"]
            assert isinstance(error, ActionError)
            assert error.route_id == "courses"
            assert router.state.action_data is None
        # Routes above the boundary revalidate; the boundary itself does not
        assert rec.loads_of("root") == 2
        assert rec.loads_of("courses") == 1

    @pytest.mark.anyio
    async def test_skip_revalidation_after_action_error(self) -> None:
        def failing(args):
            raise ErrorResponse(422, "Unprocessable Entity")

        rec = Recorder()
        future = {"v7_skip_action_error_revalidation": True}
        async with create_test_router(
            routes_for(rec, action=failing, boundary=True), ["/courses"], future=future
        ) as router:
            await router.navigate("/courses", form_method="post", form_data={"title": ""})
            assert router.state.errors["courses"].status == 422
        assert rec.loads_of("root") == 1

    @pytest.mark.anyio
    async def test_action_redirect_loads_with_get(self) -> None:
        rec = Recorder()
        action = lambda args: redirect("/courses/1")  # noqa: E731
        async with create_test_router(routes_for(rec, action=action), ["/courses"]) as router:
            recorder = StateRecorder().attach(router)
            await router.navigate("/courses", form_method="post", form_data={"title": "Intro"})

            assert router.state.location.pathname == "/courses/1"
            assert recorder.navigation_states == [Status.SUBMITTING, Status.LOADING, Status.IDLE]
            assert [e.pathname for e in router.history.entries] == ["/courses", "/courses/1"]
        assert ("course", "GET") in rec.calls

    @pytest.mark.anyio
    async def test_307_redirect_resubmits(self) -> None:
        moved = []

        def new_action(args):
            moved.append((args.request.method, args.request.form_data["title"]))
            return "moved"

        routes = [
            Route(path="/", id="root"),
            Route(path="/old", id="old", action=lambda args: Redirect("/new", 307)),
            Route(path="/new", id="new", action=new_action),
        ]
        async with create_test_router(routes) as router:
            await router.navigate("/old", form_method="post", form_data={"title": "Intro"})
            assert router.state.location.pathname == "/new"
            assert router.state.action_data == {"new": "moved"}
        assert moved == [("POST", "Intro")]


class TestFetchers:
    def routes(self, rec: Recorder, action=None) -> list[Route]:
        return [
            Route(
                path="/",
                id="root",
                loader=rec.loader("root"),
                children=[
                    Route(path="search", id="search", loader=lambda args: args.request.search_params.get("q")),
                    Route(path="like", id="like", action=action or (lambda args: {"liked": True})),
                ],
            ),
        ]

    @pytest.mark.anyio
    async def test_fetch_load(self) -> None:
        rec = Recorder()
        async with create_test_router(self.routes(rec)) as router:
            recorder = StateRecorder().attach(router)
            await router.fetch("search", "root", "/search?q=router")

            fetcher = router.get_fetcher("search")
            assert fetcher.state is Status.IDLE
            assert fetcher.data == "router"
            assert [s.fetchers["search"].state for s in recorder.states] == [Status.LOADING, Status.IDLE]
            # The page does not move
            assert router.state.location.pathname == "/"
            assert recorder.navigation_states == [Status.IDLE, Status.IDLE]

    @pytest.mark.anyio
    async def test_fetch_unmatched_is_404(self) -> None:
        rec = Recorder()
        async with create_test_router(self.routes(rec)) as router:
            await router.fetch("k", "root", "/missing")

            error = router.state.errors["root"]
            assert error.status == 404
            assert "k" not in router.state.fetchers
            # Fetcher errors do not trim the page
            assert [m.route.id for m in router.state.matches] == ["root"]

    @pytest.mark.anyio
    async def test_fetch_submit_revalidates_page(self) -> None:
        rec = Recorder()
        async with create_test_router(self.routes(rec)) as router:
            recorder = StateRecorder().attach(router)
            await router.fetch("like", "root", "/like", form_method="post", form_data={"id": "1"})

            assert router.get_fetcher("like").data == {"liked": True}
            assert [s.fetchers["like"].state for s in recorder.states if "like" in s.fetchers] == [
                Status.SUBMITTING,
                Status.LOADING,
                Status.LOADING,
                Status.IDLE,
            ]
            assert recorder.last.revalidation is Revalidation.IDLE
            assert Revalidation.LOADING in [s.revalidation for s in recorder.states]
        assert rec.loads_of("root") == 2

    @pytest.mark.anyio
    async def test_fetch_submit_during_navigation_reloads_page(self) -> None:
        version = [0]
        page = Deferred()

        def bump(args):
            version[0] += 1
            return "bumped"

        routes = [
            Route(
                path="/",
                id="root",
                loader=lambda args: version[0],
                children=[
                    Route(path="a", id="a", loader=page.loader),
                    Route(path="m", id="m", action=bump),
                ],
            )
        ]
        async with create_test_router(routes) as router:
            async with anyio.create_task_group() as tg:
                tg.start_soon(router.navigate, "/a")
                await page.wait_started()
                tg.start_soon(functools.partial(router.fetch, "f", "root", "/m", form_method="post"))
                with anyio.fail_after(5):
                    # The page load starts over once the mutation lands
                    while len(page.calls) < 2:
                        await anyio.sleep(0)
                page.resolve("a-data")

            assert version[0] == 1
            assert router.state.location.pathname == "/a"
            assert router.state.loader_data == {"root": 1, "a": "a-data"}
            assert router.state.navigation.state is Status.IDLE
            assert router.get_fetcher("f").state is Status.IDLE
            assert router.get_fetcher("f").data == "bumped"

    @pytest.mark.anyio
    async def test_revalidate_leaves_fetchers_alone(self) -> None:
        rec = Recorder()
        slow = Deferred()
        routes = [
            Route(
                path="/",
                id="root",
                loader=rec.loader("root"),
                children=[Route(path="slow", id="slow", loader=slow.loader)],
            )
        ]
        async with create_test_router(routes) as router:
            async with anyio.create_task_group() as tg:
                tg.start_soon(router.fetch, "f", "root", "/slow")
                await slow.wait_started()

                await router.revalidate()
                assert rec.loads_of("root") == 2
                assert router.state.revalidation is Revalidation.IDLE
                assert router.get_fetcher("f").state is Status.LOADING
                assert len(slow.calls) == 1

                slow.resolve("slow-data")
            assert router.get_fetcher("f").state is Status.IDLE
            assert router.get_fetcher("f").data == "slow-data"

    @pytest.mark.anyio
    async def test_fetch_submit_without_action_is_405(self) -> None:
        rec = Recorder()
        async with create_test_router(self.routes(rec)) as router:
            await router.fetch("k", "root", "/search", form_method="post", form_data={"q": "x"})
            assert router.state.errors["root"].status == 405

    @pytest.mark.anyio
    async def test_fetch_action_redirect_navigates(self) -> None:
        rec = Recorder()
        async with create_test_router(self.routes(rec, action=lambda args: redirect("/search?q=done"))) as router:
            await router.fetch("like", "root", "/like", form_method="post", form_data={"id": "1"})
            assert router.state.location.path == "/search?q=done"
            assert router.get_fetcher("like").state is Status.IDLE

    @pytest.mark.anyio
    async def test_same_key_supersedes(self) -> None:
        first = Deferred()
        routes = [
            Route(
                path="/",
                id="root",
                children=[
                    Route(path="a", id="a", loader=first.loader),
                    Route(path="b", id="b", loader=lambda args: "b-data"),
                ],
            ),
        ]
        async with create_test_router(routes) as router:
            async with anyio.create_task_group() as tg:
                tg.start_soon(router.fetch, "k", "root", "/a")
                await first.wait_started()
                await router.fetch("k", "root", "/b")
                first.resolve("a-data")

            assert router.get_fetcher("k").data == "b-data"
            assert first.calls[0].request.signal.aborted

    @pytest.mark.anyio
    async def test_delete_fetcher(self) -> None:
        rec = Recorder()
        async with create_test_router(self.routes(rec)) as router:
            await router.fetch("search", "root", "/search?q=x")
            router.delete_fetcher("search")

            assert "search" not in router.state.fetchers
            assert router.get_fetcher("search") is IDLE_FETCHER

    @pytest.mark.anyio
    async def test_loaded_fetchers_survive_navigation(self) -> None:
        rec = Recorder()
        async with create_test_router(self.routes(rec)) as router:
            await router.fetch("search", "root", "/search?q=x")
            await router.navigate("/like")
            assert router.get_fetcher("search").data == "x"
