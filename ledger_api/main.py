"""Run the API with uvicorn: ``python -m ledger_api.main`` or the ``ledger-api`` script."""
from __future__ import annotations

import uvicorn

from ledger_api.app import create_app
from ledger_api.core.config import get_settings
from ledger_api.core.logging import configure_logging


def main() -> None:
    configure_logging()
    settings = get_settings()
    uvicorn.run(
        create_app(),
        host=settings.api_host,
        port=settings.api_port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
