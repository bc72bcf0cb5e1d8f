"""Domain-specific exceptions."""


class SecureContainerError(Exception):
    """Base exception for startup and runtime errors."""

    pass


class PrivilegedUserError(SecureContainerError):
    """Raised when the process runs with the superuser identity."""

    def __init__(self, uid: int):
        self.uid = uid
        super().__init__(
            f"Refusing to run as root (UID: {uid}). "
            "Running as root inside a container is insecure."
        )
