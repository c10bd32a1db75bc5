"""健康检查器基类"""

from abc import ABC, abstractmethod
from typing import Dict, Any, Optional

from ..models.health_check import HealthCheckResult, Service
from ..utils.log_manager import get_logger

DEFAULT_PROBE_TIMEOUT = 3.0


class BaseHealthChecker(ABC):
    """健康检查器抽象基类

    一个检查器实例可以探测任意多个服务，``check_health`` 不允许抛出异常，
    所有失败都要折算为结果值。
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        """
        初始化健康检查器

        Args:
            config: 检查器配置，支持 timeout（秒）
        """
        self.config = config or {}
        self.probe_type = self.__class__.__name__.replace('HealthChecker', '').lower()
        self.logger = get_logger(f'checker.{self.probe_type}')

    @abstractmethod
    async def check_health(self, service: Service) -> HealthCheckResult:
        """
        对指定服务执行一次健康探测

        Args:
            service: 被探测的服务

        Returns:
            HealthCheckResult: 健康检查结果
        """
        pass

    def validate_config(self) -> bool:
        """
        验证配置参数是否有效

        Returns:
            bool: 配置是否有效
        """
        timeout = self.config.get('timeout', DEFAULT_PROBE_TIMEOUT)
        return (isinstance(timeout, (int, float)) and not isinstance(timeout, bool)
                and timeout > 0)

    def get_timeout(self) -> float:
        """
        获取超时时间配置

        Returns:
            float: 超时时间（秒）
        """
        return float(self.config.get('timeout', DEFAULT_PROBE_TIMEOUT))

    async def close(self):
        """释放检查器持有的资源"""
        pass
