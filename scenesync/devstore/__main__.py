"""
Run the dev store.

Usage:
    python -m scenesync.devstore
"""

import uvicorn

from .app import create_app
from .config import Settings


def main() -> None:
    """Main entry point."""
    settings = Settings()
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port, log_level=settings.log_level)


if __name__ == "__main__":
    main()
