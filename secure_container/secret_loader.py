"""Read secrets from files mounted into the container.

Each secret lives in its own file under the secrets directory (Docker and
Kubernetes both mount them at ``/run/secrets/<name>`` by convention). Every
secret is optional: a missing or unreadable file is logged and reported as
absent, it never aborts startup.
"""

from collections.abc import Iterable, Iterator, Mapping
from pathlib import Path
from types import MappingProxyType
from typing import Final

from .logging_config import get_logger

logger: Final = get_logger(__name__)


class LoadedSecrets(Mapping[str, str | None]):
    """Read-only mapping of secret name to value, ``None`` when absent."""

    def __init__(self, values: Mapping[str, str | None]):
        self._values = MappingProxyType(dict(values))

    def __getitem__(self, name: str) -> str | None:
        return self._values[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def is_loaded(self, name: str) -> bool:
        """Check whether the named secret was read and is non-empty."""
        return bool(self._values.get(name))

    @property
    def loaded_names(self) -> tuple[str, ...]:
        return tuple(name for name in self._values if self.is_loaded(name))

    def __repr__(self) -> str:
        # Only names and presence, never values
        states = ", ".join(
            f"{name}={'loaded' if self.is_loaded(name) else 'absent'}"
            for name in self._values
        )
        return f"LoadedSecrets({states})"


def _resolve_secret_path(name: str, secrets_dir: Path) -> Path | None:
    """Map a secret name to a file directly inside ``secrets_dir``.

    Returns None when the name is empty or would point anywhere else.
    """
    if not name or name in (".", "..") or "/" in name or "\\" in name:
        return None
    return secrets_dir / name


def read_secret(name: str, secrets_dir: Path) -> str | None:
    """Read a single secret file.

    Args:
        name: Secret name, used as the file name inside ``secrets_dir``
        secrets_dir: Directory the secrets are mounted into

    Returns:
        The file contents with surrounding whitespace stripped, or None when
        the secret is missing or cannot be read
    """
    secret_path = _resolve_secret_path(name, secrets_dir)
    if secret_path is None:
        logger.error("Invalid secret name", secret=name, secrets_dir=str(secrets_dir))
        return None

    try:
        value = secret_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        logger.warning("Secret not found", secret=name, path=str(secret_path))
        return None
    except (OSError, UnicodeDecodeError) as e:
        logger.error(
            "Error reading secret",
            secret=name,
            path=str(secret_path),
            error=f"{type(e).__name__}: {e}",
        )
        return None

    return value.strip()


def load_secrets(names: Iterable[str], secrets_dir: Path) -> LoadedSecrets:
    """Read every named secret once, independently of each other."""
    secrets = LoadedSecrets({name: read_secret(name, secrets_dir) for name in names})

    logger.info(
        "Secrets loaded",
        secrets_dir=str(secrets_dir),
        loaded=len(secrets.loaded_names),
        requested=len(secrets),
        names=list(secrets.loaded_names),
    )
    return secrets
