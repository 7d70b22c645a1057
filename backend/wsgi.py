"""WSGI entrypoint for Gunicorn and ``flask --app wsgi``."""

from __future__ import annotations

from cortex_auth import create_app

app = create_app()
