from aiohttp import web

from blogify.app.config import HealthGaugeAppKey
from blogify.app.handlers.helpers import require_login


async def handle_internal_me(request: web.Request):
    account = require_login(request)
    return web.json_response(
        {
            "id": account.id,
            "email": account.email,
            "display_name": account.display_name,
            "role": account.role,
        }
    )


async def handle_internal_ready(request: web.Request):
    health_gauge = request.app[HealthGaugeAppKey]
    if await health_gauge.is_healthy():
        return web.Response(status=200)
    return web.Response(status=503)


async def handle_internal_alive(request: web.Request):
    return web.Response(status=200)
