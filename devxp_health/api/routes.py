"""健康检查HTTP接口和WebSocket订阅"""

from typing import Any, Dict, Optional

from aiohttp import web, WSMsgType

from ..models.health_check import SystemStatus
from ..services.broadcaster import UpdateBroadcaster
from ..services.health_aggregator import HealthAggregator
from ..services.monitor_scheduler import HealthScheduler
from ..store.base import BaseStatusStore, DEFAULT_HISTORY_LIMIT
from ..utils.exceptions import StoreUnavailableError
from ..utils.log_manager import get_logger

STORE_KEY = web.AppKey('store', BaseStatusStore)
AGGREGATOR_KEY = web.AppKey('aggregator', HealthAggregator)
SCHEDULER_KEY = web.AppKey('scheduler', HealthScheduler)
BROADCASTER_KEY = web.AppKey('broadcaster', UpdateBroadcaster)
SERVER_CONFIG_KEY = web.AppKey('server_config', dict)

logger = get_logger('api')


def success_response(data: Any, message: Optional[str] = None,
                     status: int = 200, success: bool = True) -> web.Response:
    body: Dict[str, Any] = {'success': success}
    if message:
        body['message'] = message
    body['data'] = data
    return web.json_response(body, status=status)


def parse_history_limit(raw: Optional[str]) -> int:
    """解析 limit 查询参数，缺省或非法值回退到默认值，超过上限的值交由聚合器拒绝"""
    if raw is None:
        return DEFAULT_HISTORY_LIMIT
    try:
        limit = int(raw)
    except ValueError:
        return DEFAULT_HISTORY_LIMIT
    return limit if limit > 0 else DEFAULT_HISTORY_LIMIT


async def liveness(request: web.Request) -> web.Response:
    """存活检查，同时探测状态存储是否可达"""
    store = request.app[STORE_KEY]
    data = {
        'store': store.store_type,
        'subscribers': request.app[BROADCASTER_KEY].subscriber_count,
        'scheduler': request.app[SCHEDULER_KEY].get_scheduler_stats()
    }
    try:
        await store.ping()
    except StoreUnavailableError as e:
        logger.warning(f"存活检查失败: {e}")
        data['status'] = 'unavailable'
        return success_response(data, message="状态存储不可达", status=503, success=False)

    data['status'] = 'ok'
    return success_response(data)


async def system_health(request: web.Request) -> web.Response:
    """系统整体健康状态，宕机时返回503"""
    snapshot = await request.app[AGGREGATOR_KEY].current_snapshot()
    if snapshot.status == SystemStatus.DOWN:
        return success_response(snapshot.to_dict(), message="系统宕机：关键服务不可用",
                                status=503, success=False)
    return success_response(snapshot.to_dict())


async def list_service_health(request: web.Request) -> web.Response:
    results = await request.app[AGGREGATOR_KEY].latest_results()
    return success_response([result.to_dict() for result in results])


async def check_all_services(request: web.Request) -> web.Response:
    """按需执行一次完整检查周期"""
    cycle = await request.app[SCHEDULER_KEY].trigger_now()
    return success_response({
        'results': [result.to_dict() for result in cycle.results],
        'system': cycle.snapshot.to_dict(),
        'delivered': cycle.delivered
    }, message="健康检查已完成")


async def check_single_service(request: web.Request) -> web.Response:
    """立即检查单个服务"""
    result = await request.app[AGGREGATOR_KEY].check_service(request.match_info['service_id'])
    await request.app[BROADCASTER_KEY].notify_service_update(result)
    return success_response(result.to_dict())


async def service_history(request: web.Request) -> web.Response:
    limit = parse_history_limit(request.query.get('limit'))
    records = await request.app[AGGREGATOR_KEY].service_history(
        request.match_info['service_id'], limit)
    return success_response([record.to_dict() for record in records])


async def websocket_handler(request: web.Request) -> web.WebSocketResponse:
    """WebSocket订阅：连接即订阅，断开即退订"""
    server_config = request.app[SERVER_CONFIG_KEY]
    broadcaster = request.app[BROADCASTER_KEY]

    ws = web.WebSocketResponse(heartbeat=server_config.get('ws_heartbeat', 30.0))
    await ws.prepare(request)

    if not await broadcaster.subscribe(ws):
        await ws.close()
        return ws

    try:
        async for msg in ws:
            if msg.type == WSMsgType.ERROR:
                logger.warning(f"WebSocket连接异常: {ws.exception()}")
                break
            # 客户端消息不参与协议
            logger.debug(f"忽略客户端消息: {msg.type}")
    finally:
        broadcaster.unsubscribe(ws)

    return ws


def setup_routes(app: web.Application, api_prefix: str = '/api', ws_path: str = '/ws'):
    """注册所有路由"""
    prefix = api_prefix.rstrip('/')
    app.router.add_get(f'{prefix}/health', liveness)
    app.router.add_get(f'{prefix}/health/system', system_health)
    app.router.add_get(f'{prefix}/health/services', list_service_health)
    app.router.add_post(f'{prefix}/health/services/check', check_all_services)
    app.router.add_get(f'{prefix}/health/services/{{service_id}}', check_single_service)
    app.router.add_get(f'{prefix}/health/services/{{service_id}}/history', service_history)
    app.router.add_get(ws_path, websocket_handler)
