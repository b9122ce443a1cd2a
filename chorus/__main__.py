"""Allow ``python -m chorus``."""

from chorus.cli import app

app()
