"""Refuse to run with the superuser identity.

This only observes the effective uid; dropping privileges is left to the
container runtime (``USER`` in the image, ``runAsNonRoot`` in Kubernetes).
"""

import os
from typing import Final

from .constants import ROOT_UID, UNKNOWN_IDENTITY
from .exceptions import PrivilegedUserError
from .logging_config import get_logger

logger: Final = get_logger(__name__)


def get_effective_uid() -> int | None:
    """Return the effective uid, or None where the platform has no uids."""
    geteuid = getattr(os, "geteuid", None)
    if geteuid is None:
        return None
    return geteuid()


def format_uid(uid: int | None) -> str:
    return UNKNOWN_IDENTITY if uid is None else str(uid)


def ensure_not_root(uid: int | None) -> None:
    """Raise PrivilegedUserError if ``uid`` is the superuser.

    An unknown uid is let through, only a confirmed root identity is fatal.
    """
    if uid is None:
        logger.warning("Effective UID unavailable, skipping root check")
        return

    if uid == ROOT_UID:
        raise PrivilegedUserError(uid)
