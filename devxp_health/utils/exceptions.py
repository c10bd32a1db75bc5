"""自定义异常类和错误码"""

import traceback
from enum import Enum
from typing import Optional, Dict, Any
from datetime import datetime


class ErrorCode(Enum):
    """错误代码枚举"""
    # 通用错误 (1000-1999)
    UNKNOWN_ERROR = 1000
    INITIALIZATION_ERROR = 1001
    VALIDATION_ERROR = 1002

    # 配置错误 (2000-2999)
    CONFIG_FILE_NOT_FOUND = 2000
    CONFIG_PARSE_ERROR = 2001
    CONFIG_VALIDATION_ERROR = 2002
    CONFIG_RELOAD_ERROR = 2003

    # 健康检查错误 (3000-3999)
    CHECKER_INITIALIZATION_ERROR = 3000
    SERVICE_NOT_FOUND = 3002

    # 存储错误 (4000-4999)
    STORE_ERROR = 4000
    STORE_UNAVAILABLE = 4001
    STORE_WRITE_ERROR = 4002

    # 调度错误 (5000-5999)
    SCHEDULER_ERROR = 5000


class HealthMonitorError(Exception):
    """健康监控系统基础异常类"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.UNKNOWN_ERROR,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        recoverable: bool = True
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.cause = cause
        self.recoverable = recoverable
        self.timestamp = datetime.now()

    def to_dict(self) -> Dict[str, Any]:
        """将异常转换为字典格式"""
        return {
            'error_code': self.error_code.value,
            'error_name': self.error_code.name,
            'message': self.message,
            'details': self.details,
            'recoverable': self.recoverable,
            'timestamp': self.timestamp.isoformat(),
            'cause': str(self.cause) if self.cause else None,
            'traceback': traceback.format_exc() if self.cause else None
        }

    def format_error(self) -> str:
        """格式化错误信息"""
        error_msg = f"[{self.error_code.name}] {self.message}"
        if self.details:
            details_str = ", ".join([f"{k}={v}" for k, v in self.details.items()])
            error_msg += f" (详情: {details_str})"
        if self.cause:
            error_msg += f" (原因: {str(self.cause)})"
        return error_msg


class ConfigError(HealthMonitorError):
    """配置相关异常"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.CONFIG_VALIDATION_ERROR,
        config_path: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop('details', {})
        if config_path:
            details['config_path'] = config_path
        kwargs.setdefault('recoverable', False)
        super().__init__(message, error_code, details, **kwargs)


class ValidationError(HealthMonitorError):
    """请求参数校验异常"""

    def __init__(self, message: str, field: Optional[str] = None, **kwargs):
        details = kwargs.pop('details', {})
        if field:
            details['field'] = field
        super().__init__(message, ErrorCode.VALIDATION_ERROR, details,
                         recoverable=False, **kwargs)


class CheckerError(HealthMonitorError):
    """健康检查器相关异常"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.CHECKER_INITIALIZATION_ERROR,
        service_id: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop('details', {})
        if service_id:
            details['service_id'] = service_id
        super().__init__(message, error_code, details, **kwargs)


class ServiceNotFoundError(HealthMonitorError):
    """服务不存在，不可重试"""

    def __init__(self, service_id: str, **kwargs):
        super().__init__(
            f"服务不存在: {service_id}",
            ErrorCode.SERVICE_NOT_FOUND,
            {'service_id': service_id},
            recoverable=False,
            **kwargs
        )
        self.service_id = service_id


class StoreError(HealthMonitorError):
    """状态存储相关异常"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.STORE_ERROR,
        operation: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop('details', {})
        if operation:
            details['operation'] = operation
        super().__init__(message, error_code, details, **kwargs)


class StoreUnavailableError(StoreError):
    """状态存储不可达，无法判定健康状况"""

    def __init__(self, message: str, operation: Optional[str] = None, **kwargs):
        super().__init__(
            message,
            ErrorCode.STORE_UNAVAILABLE,
            operation=operation,
            recoverable=True,
            **kwargs
        )


class SchedulerError(HealthMonitorError):
    """调度器相关异常"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.SCHEDULER_ERROR,
        task_name: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop('details', {})
        if task_name:
            details['task_name'] = task_name
        super().__init__(message, error_code, details, **kwargs)
