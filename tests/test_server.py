"""Tests for the uvicorn server: binding, startup logging and shutdown."""

import asyncio
import os
import signal
import socket
import subprocess
import sys
import threading
import time
from pathlib import Path

import httpx
import pytest
from starlette.responses import PlainTextResponse
from structlog.testing import capture_logs

from secure_container import server as server_module
from secure_container.config import Settings
from secure_container.main import create_app
from secure_container.server import SecureServer, build_server, serve

PROJECT_ROOT = Path(__file__).resolve().parent.parent


def _wait_for(condition, timeout: float = 10.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if condition():
            return True
        time.sleep(0.05)
    return False


def _port_accepts_connections(port: int) -> bool:
    try:
        with socket.create_connection(("127.0.0.1", port), timeout=0.5):
            return True
    except OSError:
        return False


def test_build_server_uses_settings(make_context):
    context = make_context()
    settings = context.settings.model_copy(update={"port": 9090})

    server = build_server(create_app(context), settings)

    assert isinstance(server, SecureServer)
    assert server.config.host == "0.0.0.0"
    assert server.config.port == 9090
    assert server.config.timeout_graceful_shutdown == 5.0
    assert server.context is context


def test_server_serves_and_drains_on_shutdown(make_context, free_port: int):
    context = make_context(database_password="hunter2")
    settings = context.settings.model_copy(update={"port": free_port})
    server = build_server(create_app(context), settings)

    with capture_logs() as logs:
        thread = threading.Thread(target=server.run, daemon=True)
        thread.start()
        assert _wait_for(lambda: server.started)

        response = httpx.get(f"http://127.0.0.1:{free_port}/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "uid": 1000}
        assert server.bound_port == free_port

        server.should_exit = True
        thread.join(timeout=10)

    assert not thread.is_alive()
    assert not _port_accepts_connections(free_port)

    events = [entry["event"] for entry in logs]
    assert f"Server running on port {free_port}" in events
    assert "Running as non-root user (UID: 1000)" in events
    assert events[-1] == "Server closed"
    assert "hunter2" not in repr(logs)


def test_bind_failure_exits_non_zero(make_context):
    context = make_context()
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as blocker:
        blocker.bind(("0.0.0.0", 0))
        blocker.listen()
        port = blocker.getsockname()[1]
        settings = context.settings.model_copy(update={"port": port})
        server = build_server(create_app(context), settings)

        with pytest.raises(SystemExit) as exc_info:
            server.run()

    assert exc_info.value.code == 1


def test_exit_handler_exits_cleanly():
    with pytest.raises(SystemExit) as exc_info:
        server_module._exit_cleanly(signal.SIGTERM, None)

    assert exc_info.value.code == 0


def test_serve_installs_clean_exit_handler(
    make_context, monkeypatch: pytest.MonkeyPatch
):
    context = make_context()
    monkeypatch.setattr(SecureServer, "run", lambda self, sockets=None: None)
    previous = {sig: signal.getsignal(sig) for sig in (signal.SIGTERM, signal.SIGINT)}

    try:
        serve(create_app(context), context.settings)
        assert signal.getsignal(signal.SIGTERM) is server_module._exit_cleanly
        assert signal.getsignal(signal.SIGINT) is server_module._exit_cleanly
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)


def _start_with_slow_route(
    make_context, port: int, shutdown_timeout: float, delay: float
) -> tuple[SecureServer, threading.Thread, threading.Event]:
    context = make_context()
    settings = context.settings.model_copy(
        update={"port": port, "shutdown_timeout": shutdown_timeout}
    )
    app = create_app(context)
    entered = threading.Event()

    async def slow(request):
        entered.set()
        await asyncio.sleep(delay)
        return PlainTextResponse("done")

    app.add_route("/slow", slow)
    server = build_server(app, settings)
    thread = threading.Thread(target=server.run, daemon=True)
    thread.start()
    assert _wait_for(lambda: server.started)
    return server, thread, entered


def _fetch_in_background(url: str) -> tuple[threading.Thread, dict]:
    results: dict = {}

    def fetch() -> None:
        try:
            results["response"] = httpx.get(url, timeout=20)
        except httpx.HTTPError as e:
            results["error"] = e

    thread = threading.Thread(target=fetch, daemon=True)
    thread.start()
    return thread, results


def test_in_flight_request_finishes_during_drain(make_context, free_port: int):
    server, server_thread, entered = _start_with_slow_route(
        make_context, free_port, shutdown_timeout=5.0, delay=2.0
    )
    client_thread, results = _fetch_in_background(
        f"http://127.0.0.1:{free_port}/slow"
    )
    assert entered.wait(timeout=10)

    server.should_exit = True

    # New connections are refused while the accepted one is still running
    assert _wait_for(lambda: not _port_accepts_connections(free_port), timeout=1.5)
    assert client_thread.is_alive()

    client_thread.join(timeout=10)
    server_thread.join(timeout=10)
    assert not server_thread.is_alive()
    assert "error" not in results
    assert results["response"].status_code == 200
    assert results["response"].text == "done"


def test_drain_is_bounded_by_shutdown_timeout(make_context, free_port: int):
    server, server_thread, entered = _start_with_slow_route(
        make_context, free_port, shutdown_timeout=0.5, delay=60.0
    )
    client_thread, results = _fetch_in_background(
        f"http://127.0.0.1:{free_port}/slow"
    )
    assert entered.wait(timeout=10)

    started = time.monotonic()
    server.should_exit = True
    server_thread.join(timeout=10)

    assert not server_thread.is_alive()
    assert time.monotonic() - started < 10
    client_thread.join(timeout=25)
    assert not client_thread.is_alive()
    # The request was cut off, it never got to answer
    response = results.get("response")
    assert response is None or response.text != "done"


def _spawn_with_uid(uid: int, port: int, secrets_dir: Path) -> subprocess.Popen:
    """Start the CLI in a child process that reports ``uid`` as its identity."""
    script = (
        "import os\n"
        f"os.geteuid = lambda: {uid}\n"
        "from secure_container.cli import app\n"
        "app(prog_name='secure-container')\n"
    )
    env = {
        **os.environ,
        "PORT": str(port),
        "SECRETS_DIR": str(secrets_dir),
        "PYTHONPATH": str(PROJECT_ROOT),
    }
    return subprocess.Popen(
        [sys.executable, "-c", script],
        cwd=PROJECT_ROOT,
        env=env,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
    )


posix_only = pytest.mark.skipif(
    not hasattr(os, "geteuid") or not hasattr(signal, "SIGTERM"),
    reason="needs POSIX uids and signals",
)


@posix_only
def test_sigterm_exits_with_code_zero(secrets_dir: Path, free_port: int):
    process = _spawn_with_uid(1000, free_port, secrets_dir)
    try:
        assert _wait_for(lambda: _port_accepts_connections(free_port), timeout=20)

        process.send_signal(signal.SIGTERM)

        assert process.wait(timeout=15) == 0
        assert not _port_accepts_connections(free_port)
    finally:
        if process.poll() is None:
            process.kill()
            process.wait()


@posix_only
def test_root_process_exits_without_listening(secrets_dir: Path, free_port: int):
    process = _spawn_with_uid(0, free_port, secrets_dir)
    try:
        assert process.wait(timeout=20) == 1
        assert not _port_accepts_connections(free_port)
    finally:
        if process.poll() is None:
            process.kill()
            process.wait()
