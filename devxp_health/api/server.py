"""Web应用组装与启动"""

from typing import Any, Dict, Optional

from aiohttp import web

from .middlewares import error_middleware
from .routes import (AGGREGATOR_KEY, BROADCASTER_KEY, SCHEDULER_KEY, SERVER_CONFIG_KEY,
                     STORE_KEY, setup_routes)
from ..services.broadcaster import UpdateBroadcaster
from ..services.health_aggregator import HealthAggregator
from ..services.monitor_scheduler import HealthScheduler
from ..store.base import BaseStatusStore
from ..utils.log_manager import get_logger

logger = get_logger('server')


def create_app(store: BaseStatusStore, aggregator: HealthAggregator,
               scheduler: HealthScheduler, broadcaster: UpdateBroadcaster,
               server_config: Optional[Dict[str, Any]] = None) -> web.Application:
    """
    创建aiohttp应用

    Args:
        store: 状态存储
        aggregator: 健康聚合器
        scheduler: 监控调度器
        broadcaster: 推送器
        server_config: server 配置段

    Returns:
        web.Application: 已注册路由和中间件的应用
    """
    server_config = dict(server_config or {})

    app = web.Application(middlewares=[error_middleware])
    app[STORE_KEY] = store
    app[AGGREGATOR_KEY] = aggregator
    app[SCHEDULER_KEY] = scheduler
    app[BROADCASTER_KEY] = broadcaster
    app[SERVER_CONFIG_KEY] = server_config

    setup_routes(app,
                 api_prefix=server_config.get('api_prefix', '/api'),
                 ws_path=server_config.get('ws_path', '/ws'))

    async def on_shutdown(app: web.Application):
        await app[BROADCASTER_KEY].close_all()

    app.on_shutdown.append(on_shutdown)
    return app


async def start_web_server(app: web.Application, host: str = '0.0.0.0',
                           port: int = 4000) -> web.AppRunner:
    """启动HTTP服务，返回runner供停止时清理"""
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()
    logger.info(f"HTTP服务已启动: http://{host}:{port}")
    return runner
