"""
Run the gateway: ``python -m session_gateway``
"""

import uvicorn

from .api.server import create_app
from .infrastructure.config.config_loader import get_settings_from_working_directory


def main() -> None:
    settings = get_settings_from_working_directory()
    app = create_app(settings)
    uvicorn.run(
        app,
        host=settings.api.host,
        port=settings.api.port,
        log_level=settings.logging.level.value.lower(),
    )


if __name__ == "__main__":
    main()
