"""健康检查相关的数据模型"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Any, List, Optional


def utcnow() -> datetime:
    """带时区的当前UTC时间"""
    return datetime.now(timezone.utc)


class ServiceStatus(str, Enum):
    """单个服务的健康状态"""
    UP = 'up'
    DOWN = 'down'
    DEGRADED = 'degraded'
    UNKNOWN = 'unknown'


class SystemStatus(str, Enum):
    """系统整体健康状态"""
    HEALTHY = 'healthy'
    DEGRADED = 'degraded'
    DOWN = 'down'


@dataclass
class Service:
    """被监控服务，注册表由外部维护，检查周期内只读"""
    id: str
    name: str
    url: str
    type: Optional[str] = None
    is_critical: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Service':
        return cls(
            id=str(data['id']),
            name=data['name'],
            url=data['url'],
            type=data.get('type'),
            is_critical=bool(data.get('is_critical', False)),
            metadata=dict(data.get('metadata') or {})
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'type': self.type,
            'url': self.url,
            'is_critical': self.is_critical,
            'metadata': self.metadata
        }


@dataclass(frozen=True)
class StatusRecord:
    """一次探测的持久化记录，写入后不可修改"""
    service_id: str
    status: ServiceStatus
    checked_at: datetime
    response_time_ms: Optional[int] = None
    error_message: Optional[str] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'service_id': self.service_id,
            'status': self.status.value,
            'response_time_ms': self.response_time_ms,
            'error_message': self.error_message,
            'checked_at': self.checked_at.isoformat()
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StatusRecord':
        return cls(
            id=str(data['id']),
            service_id=str(data['service_id']),
            status=ServiceStatus(data['status']),
            response_time_ms=data.get('response_time_ms'),
            error_message=data.get('error_message'),
            checked_at=datetime.fromisoformat(data['checked_at'])
        )


@dataclass
class HealthCheckResult:
    """健康检查结果数据模型"""
    service: Service
    status: ServiceStatus
    response_time_ms: Optional[int] = None
    error_message: Optional[str] = None
    checked_at: datetime = field(default_factory=utcnow)
    status_code: Optional[int] = None

    @property
    def service_id(self) -> str:
        return self.service.id

    @property
    def is_healthy(self) -> bool:
        return self.status == ServiceStatus.UP

    def to_status_record(self) -> StatusRecord:
        """投影为待持久化的状态记录"""
        return StatusRecord(
            service_id=self.service.id,
            status=self.status,
            response_time_ms=self.response_time_ms,
            error_message=self.error_message,
            checked_at=self.checked_at
        )

    @classmethod
    def from_record(cls, service: Service,
                    record: Optional[StatusRecord]) -> 'HealthCheckResult':
        """由最近一条状态记录还原结果，没有记录时状态为unknown"""
        if record is None:
            return cls(service=service, status=ServiceStatus.UNKNOWN)
        return cls(
            service=service,
            status=record.status,
            response_time_ms=record.response_time_ms,
            error_message=record.error_message,
            checked_at=record.checked_at
        )

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'service': self.service.to_dict(),
            'status': self.status.value,
            'response_time_ms': self.response_time_ms,
            'error_message': self.error_message,
            'checked_at': self.checked_at.isoformat()
        }
        if self.status_code is not None:
            data['status_code'] = self.status_code
        return data


@dataclass
class HealthSummary:
    """各状态的服务数量统计"""
    total: int = 0
    up: int = 0
    down: int = 0
    degraded: int = 0
    critical_down: int = 0

    @property
    def unknown(self) -> int:
        return self.total - self.up - self.down - self.degraded

    def to_dict(self) -> Dict[str, int]:
        return {
            'total': self.total,
            'up': self.up,
            'down': self.down,
            'degraded': self.degraded,
            'unknown': self.unknown,
            'critical_down': self.critical_down
        }


@dataclass
class SystemHealthSnapshot:
    """某一时刻的系统健康快照，不持久化"""
    status: SystemStatus
    services: List[HealthCheckResult]
    summary: HealthSummary
    generated_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'status': self.status.value,
            'services': [result.to_dict() for result in self.services],
            'summary': self.summary.to_dict(),
            'generated_at': self.generated_at.isoformat()
        }


@dataclass
class SaveResult:
    """一次状态写入的结果"""
    service_id: str
    success: bool
    error: Optional[Exception] = None

    @classmethod
    def ok(cls, service_id: str) -> 'SaveResult':
        return cls(service_id=service_id, success=True)

    @classmethod
    def failed(cls, service_id: str, error: Exception) -> 'SaveResult':
        return cls(service_id=service_id, success=False, error=error)


@dataclass
class CycleResult:
    """一次完整检查周期的产出"""
    results: List[HealthCheckResult]
    snapshot: SystemHealthSnapshot
    trigger: str = 'periodic'
    delivered: int = 0
