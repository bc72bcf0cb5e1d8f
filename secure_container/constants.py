"""Infrastructure and technical constants."""

from pathlib import Path
from typing import Final

# Server configuration constants
DEFAULT_PORT: Final = 8080
DEFAULT_HOST: Final = "0.0.0.0"
MIN_PORT: Final = 1
MAX_PORT: Final = 65535
DEFAULT_SHUTDOWN_TIMEOUT: Final = 5.0

# Secrets are mounted as one file per value, never passed through the environment
DEFAULT_SECRETS_DIR: Final = Path("/run/secrets")
DATABASE_PASSWORD_SECRET: Final = "database-password"
API_KEY_SECRET: Final = "api-key"
DEFAULT_SECRET_NAMES: Final = (DATABASE_PASSWORD_SECRET, API_KEY_SECRET)

# Process identity
ROOT_UID: Final = 0
UNKNOWN_IDENTITY: Final = "unknown"
