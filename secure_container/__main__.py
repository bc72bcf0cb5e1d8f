"""Allow ``python -m secure_container``."""

from .cli import app

app(prog_name="secure-container")
