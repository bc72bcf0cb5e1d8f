from collections.abc import Awaitable, Callable
from typing import Final

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.types import Receive, Scope, Send

from .bootstrap import RuntimeContext
from .constants import UNKNOWN_IDENTITY

Handler = Callable[[Request], Awaitable[Response]]


class AnyMethodEndpoint:
    """ASGI endpoint that answers every HTTP method the same way.

    Starlette only checks methods for function endpoints; a route whose
    endpoint is an ASGI callable keeps ``methods=None`` and matches them all,
    including TRACE and non-standard ones such as PROPFIND.
    """

    def __init__(self, handler: Handler):
        self.handler = handler

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        response = await self.handler(Request(scope, receive))
        await response(scope, receive, send)


def get_context(request: Request) -> RuntimeContext:
    """Return the runtime context the application was created with."""
    return request.app.state.context


async def health(request: Request) -> JSONResponse:
    """Liveness and readiness check for the container orchestrator."""
    context = get_context(request)
    uid = UNKNOWN_IDENTITY if context.uid is None else context.uid
    return JSONResponse({"status": "healthy", "uid": uid})


async def status_page(request: Request) -> PlainTextResponse:
    """Plain-text status page; reports whether the secret loaded, never its value."""
    context = get_context(request)
    secrets_loaded = "Yes" if context.status_secret_loaded else "No"
    return PlainTextResponse(
        f"{context.settings.app_name}\n\n"
        f"Running as UID: {context.uid_display}\n"
        f"Secrets loaded: {secrets_loaded}\n"
    )


# Dispatch is on the path only
ROUTES: Final = {
    "/health": health,
    "/": status_page,
}


def register_routes(app: FastAPI) -> None:
    for path, handler in ROUTES.items():
        app.add_route(path, AnyMethodEndpoint(handler), name=handler.__name__)
