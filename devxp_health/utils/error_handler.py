"""重试机制"""

import asyncio
import random
from dataclasses import dataclass
from enum import Enum
from functools import wraps
from typing import Callable, Awaitable, Optional, List, TypeVar

from .exceptions import HealthMonitorError
from .log_manager import get_logger

T = TypeVar('T')
logger = get_logger('retry')


class RetryStrategy(Enum):
    """重试策略"""
    FIXED_DELAY = "fixed_delay"
    EXPONENTIAL_BACKOFF = "exponential_backoff"
    LINEAR_BACKOFF = "linear_backoff"


@dataclass
class RetryConfig:
    """重试配置"""
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 60.0
    strategy: RetryStrategy = RetryStrategy.EXPONENTIAL_BACKOFF
    backoff_multiplier: float = 2.0
    jitter: bool = True
    retryable_errors: Optional[List[type]] = None


class RetryHandler:
    """重试处理器"""

    def __init__(self, config: RetryConfig):
        self.config = config

    def calculate_delay(self, attempt: int) -> float:
        """计算第 attempt 次失败后的等待时间"""
        if self.config.strategy == RetryStrategy.EXPONENTIAL_BACKOFF:
            delay = self.config.base_delay * (
                self.config.backoff_multiplier ** (attempt - 1))
        elif self.config.strategy == RetryStrategy.LINEAR_BACKOFF:
            delay = self.config.base_delay * attempt
        else:
            delay = self.config.base_delay

        delay = min(delay, self.config.max_delay)

        if self.config.jitter:
            delay = delay * (0.5 + random.random() * 0.5)

        return delay

    def should_retry(self, error: Exception, attempt: int) -> bool:
        """判断是否应该重试"""
        if attempt >= self.config.max_attempts:
            return False

        if self.config.retryable_errors:
            return any(isinstance(error, error_type) for error_type in
                       self.config.retryable_errors)

        # 对于HealthMonitorError，检查recoverable标志
        if isinstance(error, HealthMonitorError):
            return error.recoverable

        # 默认情况下，网络相关错误可重试
        return isinstance(error, (ConnectionError, TimeoutError, OSError))


def retry_on_error(
        max_attempts: int = 3,
        base_delay: float = 1.0,
        strategy: RetryStrategy = RetryStrategy.EXPONENTIAL_BACKOFF,
        retryable_errors: Optional[List[type]] = None,
        jitter: bool = True
):
    """异步函数重试装饰器

    Args:
        max_attempts: 最大尝试次数
        base_delay: 基础等待时间（秒）
        strategy: 重试策略
        retryable_errors: 可重试的异常类型，为空时按默认规则判断
        jitter: 是否给等待时间加随机抖动
    """
    config = RetryConfig(
        max_attempts=max_attempts,
        base_delay=base_delay,
        strategy=strategy,
        retryable_errors=retryable_errors,
        jitter=jitter
    )
    retry_handler = RetryHandler(config)

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            attempt = 0
            while True:
                attempt += 1
                try:
                    return await func(*args, **kwargs)
                except Exception as error:
                    if not retry_handler.should_retry(error, attempt):
                        logger.error(
                            f"函数 {func.__name__} 失败且不再重试 "
                            f"(尝试 {attempt}/{config.max_attempts}): {error}")
                        raise

                    delay = retry_handler.calculate_delay(attempt)
                    logger.warning(
                        f"函数 {func.__name__} 执行失败 (尝试 {attempt}/{config.max_attempts}): "
                        f"{error}，{delay:.2f}秒后重试"
                    )
                    await asyncio.sleep(delay)

        return wrapper

    return decorator
