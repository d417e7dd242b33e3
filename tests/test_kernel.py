"""Tests for the route middleware kernel."""

from __future__ import annotations

from typing import Any

import pytest
from fastapi import APIRouter, FastAPI
from fastapi.testclient import TestClient

from tenantforge.infra.fastapi.kernel import DEFAULT_PRIORITY, KernelRoute, MiddlewareKernel


class Tag:
    """Route middleware appending its tag to a shared trail."""

    def __init__(self, app: Any, tag: str, trail: list[str]) -> None:
        self.app = app
        self.tag = tag
        self.trail = trail

    async def __call__(self, scope: Any, receive: Any, send: Any) -> None:
        self.trail.append(self.tag)
        await self.app(scope, receive, send)


@pytest.fixture()
def trail() -> list[str]:
    return []


@pytest.fixture()
def kernel(trail: list[str]) -> MiddlewareKernel:
    k = MiddlewareKernel()
    for tag in ("a", "b", "c"):
        k.alias(tag, Tag, tag=tag, trail=trail)
    return k


class TestResolve:
    def test_groups_expand_and_duplicates_collapse(self, kernel: MiddlewareKernel) -> None:
        kernel.group("api", ["a", "b"])
        assert kernel.resolve(["web", "api", "request_context", "a"]) == [
            "request_context",
            "a",
            "b",
        ]

    def test_prioritized_names_swap_into_their_slots(self, kernel: MiddlewareKernel) -> None:
        kernel.prepend_to_priority("a")
        kernel.prepend_to_priority("c")

        assert kernel.resolve(["a", "b", "c"]) == ["c", "b", "a"]

    def test_unprioritized_names_keep_their_position(self, kernel: MiddlewareKernel) -> None:
        assert kernel.resolve(["b", "a", "c"]) == ["b", "a", "c"]

    def test_unknown_name_raises(self, kernel: MiddlewareKernel) -> None:
        with pytest.raises(LookupError, match="missing"):
            kernel.resolve(["missing"])

    def test_self_including_group_raises(self, kernel: MiddlewareKernel) -> None:
        kernel.group("loop", ["a", "loop"])
        with pytest.raises(ValueError, match="includes itself"):
            kernel.resolve(["loop"])

    def test_universal_group_is_empty(self, kernel: MiddlewareKernel) -> None:
        assert kernel.resolve(["universal"]) == []


class TestPriority:
    def test_default_priority(self) -> None:
        assert MiddlewareKernel().priority == list(DEFAULT_PRIORITY)

    def test_prepend_is_idempotent(self, kernel: MiddlewareKernel) -> None:
        kernel.prepend_to_priority("a")
        kernel.prepend_to_priority("a")
        kernel.prepend_to_priority("tenant_file_url")

        assert kernel.priority == ["a", *DEFAULT_PRIORITY]

    def test_reverse_prepending_keeps_listed_order(self, kernel: MiddlewareKernel) -> None:
        for name in reversed(["a", "b", "c"]):
            kernel.prepend_to_priority(name)
        assert kernel.priority[:3] == ["a", "b", "c"]

    def test_append_is_idempotent(self, kernel: MiddlewareKernel) -> None:
        kernel.append_to_priority("b")
        kernel.append_to_priority("b")
        assert kernel.priority == [*DEFAULT_PRIORITY, "b"]


class TestBuild:
    @pytest.mark.asyncio(loop_scope="function")
    async def test_first_name_is_outermost(self, kernel: MiddlewareKernel, trail: list[str]) -> None:
        async def endpoint(scope: Any, receive: Any, send: Any) -> None:
            trail.append("endpoint")

        stack = kernel.build(["b", "a"], endpoint)
        await stack({"type": "http"}, None, None)

        assert trail == ["b", "a", "endpoint"]

    def test_wrap_rejects_non_routes(self, kernel: MiddlewareKernel) -> None:
        with pytest.raises(TypeError, match="FastAPI"):
            kernel.wrap(FastAPI(), ["a"])  # type: ignore[arg-type]


class TestIncludeRouter:
    def test_stack_runs_around_the_endpoint(self, kernel: MiddlewareKernel, trail: list[str]) -> None:
        router = APIRouter()

        @router.get("/ping")
        async def ping() -> dict[str, str]:
            trail.append("endpoint")
            return {"pong": "ok"}

        app = FastAPI()
        kernel.include_router(app, router, ["a", "b"])

        response = TestClient(app).get("/ping")

        assert response.status_code == 200
        assert trail == ["a", "b", "endpoint"]

    def test_stack_is_built_on_first_request(
        self, kernel: MiddlewareKernel, trail: list[str]
    ) -> None:
        router = APIRouter()

        @router.get("/ping")
        async def ping() -> dict[str, str]:
            return {"pong": "ok"}

        app = FastAPI()
        kernel.include_router(app, router, ["a", "b"])
        # Changed after the route exists; still honoured.
        kernel.prepend_to_priority("b")
        kernel.append_to_priority("a")

        response = TestClient(app).get("/ping")

        assert response.status_code == 200
        assert trail == ["b", "a"]

    def test_unmatched_paths_skip_the_stack(self, kernel: MiddlewareKernel, trail: list[str]) -> None:
        router = APIRouter()

        @router.get("/ping")
        async def ping() -> None:
            return None

        app = FastAPI()
        kernel.include_router(app, router, ["a"])

        assert TestClient(app).get("/other").status_code == 404
        assert trail == []

    def test_path_params_reach_the_stack(self, kernel: MiddlewareKernel) -> None:
        seen: list[dict[str, Any]] = []

        class Capture:
            def __init__(self, app: Any) -> None:
                self.app = app

            async def __call__(self, scope: Any, receive: Any, send: Any) -> None:
                seen.append(dict(scope["path_params"]))
                await self.app(scope, receive, send)

        kernel.alias("capture", Capture)
        router = APIRouter()

        @router.get("/items/{item_id}")
        async def item(item_id: int) -> dict[str, int]:
            return {"item_id": item_id}

        app = FastAPI()
        kernel.include_router(app, router, ["capture"])

        assert TestClient(app).get("/items/7").json() == {"item_id": 7}
        assert seen == [{"item_id": "7"}]

    def test_wrapped_routes_expose_their_middleware(self, kernel: MiddlewareKernel) -> None:
        router = APIRouter()

        @router.get("/ping", name="ping")
        async def ping() -> None:
            return None

        app = FastAPI()
        (route,) = kernel.include_router(app, router, ["web", "a"])

        assert isinstance(route, KernelRoute)
        assert route.middleware_names == ("web", "a")
        assert route.path == "/ping"
        assert app.url_path_for("ping") == "/ping"


class TestBooted:
    def test_callbacks_wait_for_boot(self) -> None:
        kernel = MiddlewareKernel()
        calls: list[str] = []
        kernel.booted(lambda: calls.append("first"))

        assert calls == []
        kernel.boot()
        kernel.boot()
        assert calls == ["first"]

    def test_callbacks_after_boot_run_immediately(self) -> None:
        kernel = MiddlewareKernel()
        kernel.boot()
        calls: list[str] = []

        kernel.booted(lambda: calls.append("late"))

        assert calls == ["late"]
        assert kernel.is_booted
