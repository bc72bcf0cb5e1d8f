"""Plain-text rendering of HTTP errors."""

from http import HTTPStatus

from fastapi import Request
from fastapi.responses import PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException


def _reason_phrase(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return "Error"


async def handle_http_exception(
    request: Request, exc: StarletteHTTPException
) -> PlainTextResponse:
    """Render any HTTP error as its bare reason phrase, e.g. ``Not Found``.

    The exception detail is dropped so clients never see internal messages.
    """
    return PlainTextResponse(
        _reason_phrase(exc.status_code),
        status_code=exc.status_code,
        headers=getattr(exc, "headers", None),
    )
