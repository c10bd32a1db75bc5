"""健康检查器模块"""

from .base import BaseHealthChecker, DEFAULT_PROBE_TIMEOUT
from .http_checker import HttpHealthChecker, classify_status_code

__all__ = ['BaseHealthChecker', 'DEFAULT_PROBE_TIMEOUT', 'HttpHealthChecker',
           'classify_status_code']
