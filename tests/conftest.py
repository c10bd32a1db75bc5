"""测试共用的辅助对象"""

import asyncio
from datetime import timedelta
from typing import Dict, List, Optional

import pytest

from devxp_health.checkers.base import BaseHealthChecker
from devxp_health.models.health_check import (HealthCheckResult, Service, ServiceStatus,
                                              StatusRecord, utcnow)
from devxp_health.store.memory_store import InMemoryStatusStore


def make_service(service_id: str, name: Optional[str] = None, is_critical: bool = False,
                 url: Optional[str] = None) -> Service:
    return Service(
        id=service_id,
        name=name or service_id,
        url=url or f'http://localhost:9/{service_id}/health',
        type='REST',
        is_critical=is_critical
    )


class ScriptedChecker(BaseHealthChecker):
    """按服务ID返回预设状态的检查器"""

    def __init__(self, statuses: Optional[Dict[str, ServiceStatus]] = None,
                 delay: float = 0.0, failures: Optional[Dict[str, Exception]] = None):
        super().__init__({})
        self.statuses = statuses or {}
        self.delay = delay
        self.failures = failures or {}
        self.calls: List[str] = []

    async def check_health(self, service: Service) -> HealthCheckResult:
        self.calls.append(service.id)
        if self.delay:
            await asyncio.sleep(self.delay)
        if service.id in self.failures:
            raise self.failures[service.id]
        status = self.statuses.get(service.id, ServiceStatus.UP)
        return HealthCheckResult(
            service=service,
            status=status,
            response_time_ms=int(self.delay * 1000),
            error_message='HTTP 503: Service Unavailable' if status == ServiceStatus.DOWN else None,
            checked_at=utcnow()
        )


class FakeConnection:
    """模拟WebSocket连接"""

    def __init__(self, closed: bool = False, fail_with: Optional[Exception] = None,
                 send_delay: float = 0.0):
        self.closed = closed
        self.fail_with = fail_with
        self.send_delay = send_delay
        self.sent: List[str] = []
        self.close_calls = 0

    async def send_str(self, data: str):
        if self.send_delay:
            await asyncio.sleep(self.send_delay)
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append(data)

    async def close(self):
        self.close_calls += 1
        self.closed = True


def make_records(service_id: str, count: int, status: ServiceStatus = ServiceStatus.UP):
    """生成按时间递增的状态记录"""
    base = utcnow() - timedelta(hours=1)
    return [
        StatusRecord(service_id=service_id, status=status,
                     checked_at=base + timedelta(seconds=i), response_time_ms=i)
        for i in range(count)
    ]


@pytest.fixture
def services():
    return [
        make_service('svc-a', 'Alpha', is_critical=True),
        make_service('svc-b', 'Bravo'),
        make_service('svc-c', 'Charlie'),
    ]


@pytest.fixture
def memory_store(services):
    store = InMemoryStatusStore({'type': 'memory'})
    store.replace_services(services)
    return store
