"""Startup sequence run before the HTTP server binds its socket."""

import os
from dataclasses import dataclass
from typing import Final

from .config import Settings
from .logging_config import get_logger
from .privilege import ensure_not_root, format_uid, get_effective_uid
from .secret_loader import LoadedSecrets, load_secrets

logger: Final = get_logger(__name__)


@dataclass(frozen=True)
class RuntimeContext:
    """Everything the HTTP layer needs, resolved once at startup."""

    settings: Settings
    uid: int | None
    user: str
    secrets: LoadedSecrets

    @property
    def uid_display(self) -> str:
        return format_uid(self.uid)

    @property
    def status_secret_loaded(self) -> bool:
        return self.secrets.is_loaded(self.settings.status_secret)


def _env_var_candidates(secret_name: str) -> set[str]:
    """Environment variable names a secret is commonly passed under."""
    return {secret_name, secret_name.upper().replace("-", "_")}


def _warn_about_env_secrets(settings: Settings) -> None:
    for name in settings.secret_names:
        for var in sorted(_env_var_candidates(name)):
            if var in os.environ:
                logger.warning(
                    "Secret also present as environment variable, ignoring it",
                    secret=name,
                    variable=var,
                )


def bootstrap(settings: Settings) -> RuntimeContext:
    """Load secrets and run the privilege guard.

    Raises:
        PrivilegedUserError: If the process runs as root. Nothing has been
            bound at this point.
    """
    secrets = load_secrets(settings.secret_names, settings.secrets_dir)
    logger.info(
        "Secrets read from mounted files, not from environment variables",
        secrets_dir=str(settings.secrets_dir),
    )
    _warn_about_env_secrets(settings)

    uid = get_effective_uid()
    logger.info(f"Running as user: {settings.user} (UID: {format_uid(uid)})")

    ensure_not_root(uid)

    return RuntimeContext(
        settings=settings, uid=uid, user=settings.user, secrets=secrets
    )
