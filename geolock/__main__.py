"""
Run the geolock HTTP service together with the scheduled evaluator.
"""
from __future__ import annotations

import logging

from aiohttp import web

from . import Engine, build_engine
from .config import get_settings
from .http_api import create_app

_LOGGER = logging.getLogger(__name__)


def make_application(engine: Engine) -> web.Application:
    app = create_app(engine.settings, engine.orchestrator)

    async def _start_scheduler(app: web.Application) -> None:
        engine.scheduler.start()

    async def _shutdown(app: web.Application) -> None:
        await engine.shutdown()

    app.on_startup.append(_start_scheduler)
    app.on_cleanup.append(_shutdown)
    return app


def main() -> None:
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    if not settings.nrf_cloud_api_key:
        _LOGGER.warning("NRF_CLOUD_API_KEY is not set; telemetry and indicator calls will fail")

    engine = build_engine(settings)
    web.run_app(
        make_application(engine),
        host=settings.http_host,
        port=settings.http_port,
    )


if __name__ == "__main__":
    main()
