"""Entrypoint running the visit tracker under uvicorn."""

from __future__ import annotations

import uvicorn

from shared.config.settings import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        "services.visit_tracker.app:create_app",
        factory=True,
        host=settings.app.host,
        port=settings.app.port,
        log_config=None,
    )


if __name__ == "__main__":  # pragma: no cover
    main()
