"""数据模型模块"""

from .health_check import (Service, ServiceStatus, SystemStatus, StatusRecord,
                           HealthCheckResult, HealthSummary, SystemHealthSnapshot,
                           SaveResult, CycleResult, utcnow)

__all__ = ['Service', 'ServiceStatus', 'SystemStatus', 'StatusRecord',
           'HealthCheckResult', 'HealthSummary', 'SystemHealthSnapshot',
           'SaveResult', 'CycleResult', 'utcnow']
