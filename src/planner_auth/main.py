"""Process entry point."""

import uvicorn

from .app import create_app
from .config.logging_config import LoggingConfig
from .config.settings import get_settings


def main() -> None:
    LoggingConfig.configure()
    settings = get_settings()
    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
