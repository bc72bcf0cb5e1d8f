import socket
from pathlib import Path

import pytest
import structlog
from fastapi.testclient import TestClient

from secure_container.bootstrap import RuntimeContext
from secure_container.config import Settings
from secure_container.main import create_app
from secure_container.secret_loader import LoadedSecrets

SETTINGS_ENV_VARS = (
    "PORT",
    "HOST",
    "SECRETS_DIR",
    "SECRET_NAMES",
    "STATUS_SECRET",
    "SHUTDOWN_TIMEOUT",
    "DEBUG",
    "LOG_LEVEL",
    "LOG_TO_FILE",
    "DATABASE_PASSWORD",
    "API_KEY",
)


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch: pytest.MonkeyPatch):
    """Keep settings from the developer's shell out of the tests."""
    for var in SETTINGS_ENV_VARS:
        monkeypatch.delenv(var, raising=False)


@pytest.fixture(autouse=True)
def reset_structlog():
    yield
    structlog.reset_defaults()


@pytest.fixture(name="secrets_dir")
def secrets_dir_fixture(tmp_path: Path) -> Path:
    secrets_dir = tmp_path / "secrets"
    secrets_dir.mkdir()
    return secrets_dir


@pytest.fixture(name="settings")
def settings_fixture(secrets_dir: Path) -> Settings:
    return Settings(secrets_dir=secrets_dir, user="app", _env_file=None)


@pytest.fixture(name="make_context")
def make_context_fixture(settings: Settings):
    def make_context(uid: int | None = 1000, **secret_values: str | None):
        secrets = LoadedSecrets(
            {name.replace("_", "-"): value for name, value in secret_values.items()}
        )
        return RuntimeContext(
            settings=settings, uid=uid, user=settings.user, secrets=secrets
        )

    return make_context


@pytest.fixture(name="client")
def client_fixture(make_context):
    context = make_context(database_password="hunter2")
    with TestClient(create_app(context)) as client:
        yield client


@pytest.fixture(name="free_port")
def free_port_fixture() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]
