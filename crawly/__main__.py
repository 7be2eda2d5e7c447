"""Run the rendering service with uvicorn: `python -m crawly`."""

import uvicorn

from .config import settings


def main() -> None:
    uvicorn.run(
        "crawly.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level="debug" if settings.debug else "info",
    )


if __name__ == "__main__":
    main()
