# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""ASGI entry point.

Run with:
    uvicorn simonkey.main:app --host 0.0.0.0 --port 8080
or:
    simonkey-api
"""

import uvicorn

from simonkey.api import create_app
from simonkey.core.config import get_settings

app = create_app()


def run() -> None:
    """Serve the API with the host and port from settings."""
    settings = get_settings()
    uvicorn.run(
        "simonkey.main:app",
        host=settings.api.host,
        port=settings.api.port,
        log_config=None,
    )
