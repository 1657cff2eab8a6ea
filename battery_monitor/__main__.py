"""
Process entry point: ``python -m battery_monitor``.

uvicorn exits non-zero when the lifespan startup fails, e.g. when the
record store is unreachable.
"""
import uvicorn

from battery_monitor.core.config import settings


def main() -> None:
    uvicorn.run(
        "battery_monitor.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level="debug" if settings.debug else "info",
    )


if __name__ == "__main__":
    main()
