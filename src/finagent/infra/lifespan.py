"""Dependency injection for the FastAPI lifespan.

``inject`` resolves ``Depends()`` parameters of a lifespan function with
FastAPI's own ``solve_dependencies``, so long-lived objects (provider
registry, relay, Redis client, user lock) are built by the same
``build_*`` generators that tests can override through
``app.dependency_overrides``.

Based on https://github.com/fastapi/fastapi/discussions/11742
"""

from contextlib import AsyncExitStack, asynccontextmanager
from functools import partial
from typing import Any, AsyncIterator, Callable

from fastapi import FastAPI, Request
from fastapi.dependencies.utils import get_dependant, solve_dependencies

# Scope of the synthetic request the lifespan dependencies are solved
# against; ``app`` and ``state`` are filled in per application.
_LIFESPAN_SCOPE: dict[str, Any] = {
    "type": "http",
    "http_version": "1.1",
    "method": "GET",
    "scheme": "http",
    "path": "/",
    "raw_path": b"/",
    "query_string": b"",
    "root_path": "",
    "headers": ((b"x-request-scope", b"lifespan"),),
    "client": ("localhost", 80),
    "server": ("localhost", 80),
}


def get_app(request: Request) -> FastAPI:
    """Lifespan dependency returning the application being started."""
    return request.app


async def _solve_lifespan_args(
    app: FastAPI, lifespan: Callable[..., Any], stack: AsyncExitStack
) -> dict[str, Any]:
    request = Request(scope={**_LIFESPAN_SCOPE, "app": app, "state": app.state})
    solved = await solve_dependencies(
        request=request,
        dependant=get_dependant(path="/", call=partial(lifespan, app)),
        async_exit_stack=stack,
        embed_body_fields=False,
        dependency_overrides_provider=app,
    )
    if solved.errors:
        raise RuntimeError(f"Unresolvable lifespan dependencies: {solved.errors}")
    return solved.values


def inject(
    lifespan: Callable[..., Any],
) -> Callable[[FastAPI], Any]:
    """Turn a ``Depends()``-annotated async generator into a lifespan.

    Usage::

        @inject
        async def lifespan(
            app: FastAPI,
            _relay: Annotated[None, Depends(build_relay)],
        ):
            yield

    Each ``build_*`` generator owns its own setup and teardown; the
    ``AsyncExitStack`` unwinds them in reverse order on shutdown.
    """
    body = asynccontextmanager(lifespan)

    @asynccontextmanager
    async def wrapper(app: FastAPI) -> AsyncIterator[None]:
        async with AsyncExitStack() as stack:
            kwargs = await _solve_lifespan_args(app, lifespan, stack)
            async with body(app, **kwargs):
                yield

    return wrapper
