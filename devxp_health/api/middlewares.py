"""HTTP错误处理中间件"""

from aiohttp import web

from ..utils.exceptions import (HealthMonitorError, ServiceNotFoundError,
                                StoreUnavailableError, ValidationError)
from ..utils.log_manager import get_logger

logger = get_logger('api')


def error_response(status: int, message: str, **extra) -> web.Response:
    body = {'success': False, 'message': message}
    body.update(extra)
    return web.json_response(body, status=status)


@web.middleware
async def error_middleware(request: web.Request, handler):
    """把领域异常映射为统一的错误响应"""
    try:
        return await handler(request)
    except web.HTTPException as e:
        if e.status < 400:
            raise
        return error_response(e.status, e.reason)
    except ServiceNotFoundError as e:
        return error_response(404, e.message, service_id=e.service_id)
    except StoreUnavailableError as e:
        logger.error(f"{request.method} {request.path} 存储不可达: {e.format_error()}")
        return error_response(503, "状态存储不可达，无法判定健康状况")
    except ValidationError as e:
        return error_response(400, e.message)
    except HealthMonitorError as e:
        logger.error(f"{request.method} {request.path} 处理失败: {e.format_error()}")
        return error_response(500, e.message, error_code=e.error_code.value)
    except Exception as e:
        logger.error(f"{request.method} {request.path} 未处理的异常: {e}", exc_info=True)
        return error_response(500, "服务器内部错误")
