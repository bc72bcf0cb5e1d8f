from fastapi import FastAPI
from starlette.exceptions import HTTPException as StarletteHTTPException

from .bootstrap import RuntimeContext
from .error_handlers import handle_http_exception
from .routes import register_routes


def create_app(context: RuntimeContext) -> FastAPI:
    """Build the application around an already bootstrapped runtime context.

    Only ``/`` and ``/health`` exist; the interactive docs and the OpenAPI
    schema are disabled so that every other path answers 404.
    """
    settings = context.settings
    app = FastAPI(
        title=settings.app_name,
        version=settings.version,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        redirect_slashes=False,
    )
    app.state.context = context

    register_routes(app)
    app.add_exception_handler(StarletteHTTPException, handle_http_exception)

    return app
