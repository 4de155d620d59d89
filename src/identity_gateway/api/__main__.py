"""
identity_gateway.api.__main__

Entrypoint for running the FastAPI application via `python -m identity_gateway.api`.

Responsibilities:
- Load settings.
- Create the app (auth configuration is validated here; bad config exits early).
- Start uvicorn with structlog-compatible logging config.
"""

from __future__ import annotations

import uvicorn

from identity_gateway.api.app import create_app
from identity_gateway.settings import get_settings


def main() -> None:
    settings = get_settings()
    app = create_app(settings=settings)

    uvicorn.run(
        app,
        host=settings.api_host,
        port=settings.api_port,
        log_config=None,  # structlog
    )


if __name__ == "__main__":
    main()


# --- Module Notes -----------------------------------------------------------
# No credential store is wired here; BearerToken deployments embed `create_app`
# and pass their store implementation.
