"""uvicorn server with startup confirmation and bounded graceful shutdown."""

import signal
import socket
import threading
from types import FrameType
from typing import Final

import uvicorn
from fastapi import FastAPI

from .bootstrap import RuntimeContext
from .config import Settings
from .logging_config import get_logger

logger: Final = get_logger(__name__)


class SecureServer(uvicorn.Server):
    """uvicorn.Server that logs once the socket listens and when it closes.

    On SIGTERM/SIGINT uvicorn stops accepting connections and waits up to
    ``timeout_graceful_shutdown`` seconds for in-flight requests before
    closing the remaining ones. A repeated SIGTERM while draining is a no-op.
    """

    def __init__(self, config: uvicorn.Config, context: RuntimeContext):
        super().__init__(config)
        self.context = context

    @property
    def bound_port(self) -> int | None:
        """Port the listening socket is actually bound to."""
        for server in self.servers:
            for sock in server.sockets:
                return sock.getsockname()[1]
        return None

    async def startup(self, sockets: list[socket.socket] | None = None) -> None:
        await super().startup(sockets=sockets)
        if not self.started:
            return

        context = self.context
        logger.info(f"Server running on port {self.bound_port}")
        logger.info(f"Running as non-root user (UID: {context.uid_display})")
        logger.info(
            f"Secrets loaded from {context.settings.secrets_dir}",
            loaded=list(context.secrets.loaded_names),
        )

    async def shutdown(self, sockets: list[socket.socket] | None = None) -> None:
        logger.info("Received termination signal, shutting down gracefully...")
        await super().shutdown(sockets=sockets)
        logger.info("Server closed")


def build_server(app: FastAPI, settings: Settings) -> SecureServer:
    """Create the server for ``app`` without binding anything yet."""
    config = uvicorn.Config(
        app,
        host=settings.host,
        port=settings.port,
        timeout_graceful_shutdown=settings.shutdown_timeout,  # type: ignore[arg-type]
        log_config=None,
        server_header=False,
    )
    return SecureServer(config, context=app.state.context)


def _exit_cleanly(signum: int, frame: FrameType | None) -> None:
    raise SystemExit(0)


def serve(app: FastAPI, settings: Settings) -> None:
    """Bind, serve until a termination signal, then drain and return.

    uvicorn re-raises the captured signal once it has shut down; the handler
    installed here turns that into a normal exit with status 0.
    """
    server = build_server(app, settings)
    if threading.current_thread() is threading.main_thread():
        for sig in (signal.SIGTERM, signal.SIGINT):
            signal.signal(sig, _exit_cleanly)
    server.run()
