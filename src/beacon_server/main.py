import logging

import uvicorn

from beacon_server.app import create_app
from beacon_server.settings import Settings


def main() -> None:
    settings = Settings()
    logging.basicConfig(level=settings.log_level, format=settings.log_format)
    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        timeout_keep_alive=30,
    )


if __name__ == "__main__":
    main()
