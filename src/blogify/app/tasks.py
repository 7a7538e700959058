import asyncio
import logging
from typing import NoReturn

from aiohttp import web

from blogify.app.config import HealthGaugeAppKey, MetricsClientAppKey

logger = logging.getLogger(__name__)


async def tick_health_task(app: web.Application, interval: float = 1.0) -> NoReturn:
    """
    Tick the health gauge every second, reducing the error count by 1 each time.
    """

    logger.info("Starting health gauge task")

    health_gauge = app[HealthGaugeAppKey]
    metrics_client = app[MetricsClientAppKey]
    while True:
        await health_gauge.tick()
        metrics_client.gauge("blogify.health.errors", health_gauge.value)
        await asyncio.sleep(interval)
