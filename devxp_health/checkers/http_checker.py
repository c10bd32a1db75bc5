"""HTTP健康检查器"""

import asyncio
import time
from http import HTTPStatus
from typing import Dict, Any, Optional

import aiohttp

from .base import BaseHealthChecker
from ..models.health_check import HealthCheckResult, Service, ServiceStatus, utcnow
from ..utils.exceptions import CheckerError


def classify_status_code(status_code: int) -> ServiceStatus:
    """
    按HTTP状态码判定服务状态

    4xx说明端点可达，只算降级；5xx视为宕机。

    Args:
        status_code: HTTP状态码

    Returns:
        ServiceStatus: 服务状态
    """
    if status_code < 400:
        return ServiceStatus.UP
    if status_code < 500:
        return ServiceStatus.DEGRADED
    return ServiceStatus.DOWN


def _describe_status(status_code: int) -> str:
    try:
        return f"HTTP {status_code}: {HTTPStatus(status_code).phrase}"
    except ValueError:
        return f"HTTP {status_code}"


class HttpHealthChecker(BaseHealthChecker):
    """通过一次GET请求探测服务URL"""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        """
        初始化HTTP健康检查器

        Args:
            config: 检查器配置，支持 timeout（秒）、headers

        Raises:
            CheckerError: 配置无效
        """
        super().__init__(config)
        if not self.validate_config():
            raise CheckerError(f"探测超时必须是正数: {self.config.get('timeout')}")
        self.headers = self.config.get('headers', {})

    async def check_health(self, service: Service) -> HealthCheckResult:
        """
        执行HTTP健康检查

        Args:
            service: 被探测的服务

        Returns:
            HealthCheckResult: 健康检查结果
        """
        timeout_seconds = self.get_timeout()
        status = ServiceStatus.DOWN
        status_code = None
        error_message = None

        start_time = time.monotonic()
        try:
            timeout = aiohttp.ClientTimeout(total=timeout_seconds)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(service.url, headers=self.headers,
                                       allow_redirects=True) as response:
                    status_code = response.status
                    status = classify_status_code(status_code)
                    if status == ServiceStatus.DOWN:
                        error_message = _describe_status(status_code)

        except asyncio.TimeoutError:
            error_message = f"请求超时 ({timeout_seconds:g}s)"
        except aiohttp.ClientError as e:
            error_message = f"连接失败: {str(e) or type(e).__name__}"
        except Exception as e:
            error_message = f"HTTP健康检查异常: {type(e).__name__}: {e}"

        response_time_ms = int((time.monotonic() - start_time) * 1000)

        if status == ServiceStatus.UP:
            self.logger.debug(f"服务 {service.name} 检查完成: {status.value}, "
                              f"响应时间: {response_time_ms}ms")
        else:
            self.logger.warning(f"服务 {service.name} 检查异常: {status.value}, "
                                f"状态码: {status_code}, 原因: {error_message}")

        return HealthCheckResult(
            service=service,
            status=status,
            response_time_ms=response_time_ms,
            error_message=error_message,
            checked_at=utcnow(),
            status_code=status_code
        )
