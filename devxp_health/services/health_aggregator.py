"""健康聚合器模块

对注册表中的全部服务并发执行探测、写入检查历史，并计算系统整体健康状态
"""

import asyncio
from typing import Dict, List, Sequence

from ..checkers.base import BaseHealthChecker
from ..models.health_check import (HealthCheckResult, HealthSummary, Service,
                                   ServiceStatus, SystemHealthSnapshot, SystemStatus,
                                   utcnow)
from ..store.base import BaseStatusStore, DEFAULT_HISTORY_LIMIT, MAX_HISTORY_LIMIT
from ..utils.exceptions import ServiceNotFoundError, ValidationError
from ..utils.log_manager import get_logger


def build_snapshot(results: Sequence[HealthCheckResult]) -> SystemHealthSnapshot:
    """
    根据每个服务的最近结果计算系统健康快照

    任一关键服务宕机即判定系统宕机；否则只要有服务宕机或降级即为降级；
    其余情况（包括没有服务）为健康。

    Args:
        results: 每个服务一条的最近检查结果

    Returns:
        SystemHealthSnapshot: 系统健康快照
    """
    summary = HealthSummary(total=len(results))
    for result in results:
        if result.status == ServiceStatus.UP:
            summary.up += 1
        elif result.status == ServiceStatus.DOWN:
            summary.down += 1
            if result.service.is_critical:
                summary.critical_down += 1
        elif result.status == ServiceStatus.DEGRADED:
            summary.degraded += 1

    if summary.critical_down > 0:
        status = SystemStatus.DOWN
    elif summary.down > 0 or summary.degraded > 0:
        status = SystemStatus.DEGRADED
    else:
        status = SystemStatus.HEALTHY

    return SystemHealthSnapshot(status=status, services=list(results), summary=summary)


class HealthAggregator:
    """健康聚合器

    每个服务的"探测+写入"是独立的工作单元：一个服务的失败不会影响其他服务。
    同一服务的工作单元通过服务级锁串行执行，保证其历史按检查时间有序。
    """

    def __init__(self, store: BaseStatusStore, checker: BaseHealthChecker):
        """初始化健康聚合器

        Args:
            store: 状态存储
            checker: 健康检查器
        """
        self.store = store
        self.checker = checker
        self._service_locks: Dict[str, asyncio.Lock] = {}
        self.logger = get_logger('aggregator')

    def _lock_for(self, service_id: str) -> asyncio.Lock:
        lock = self._service_locks.get(service_id)
        if lock is None:
            lock = asyncio.Lock()
            self._service_locks[service_id] = lock
        return lock

    def _drop_stale_locks(self, active_ids) -> None:
        """丢弃已移出注册表的服务的空闲锁"""
        for service_id in list(self._service_locks):
            if service_id not in active_ids and not self._service_locks[service_id].locked():
                del self._service_locks[service_id]

    async def check_all(self) -> List[HealthCheckResult]:
        """并发检查所有服务并写入结果

        Returns:
            List[HealthCheckResult]: 与服务注册表顺序一致的检查结果

        Raises:
            StoreUnavailableError: 无法读取服务注册表
        """
        services = await self.store.list_services()
        self._drop_stale_locks({service.id for service in services})
        if not services:
            self.logger.debug("服务注册表为空，跳过检查")
            return []

        self.logger.debug(f"开始并发检查 {len(services)} 个服务")
        outcomes = await asyncio.gather(
            *(self._check_and_save(service) for service in services),
            return_exceptions=True
        )

        results = []
        for service, outcome in zip(services, outcomes):
            if isinstance(outcome, BaseException):
                if isinstance(outcome, asyncio.CancelledError):
                    raise outcome
                self.logger.error(f"检查服务 {service.name} 时发生异常: {outcome}")
                outcome = HealthCheckResult(
                    service=service,
                    status=ServiceStatus.DOWN,
                    error_message=f"健康检查异常: {type(outcome).__name__}: {outcome}",
                    checked_at=utcnow()
                )
            results.append(outcome)

        down = sum(1 for r in results if r.status == ServiceStatus.DOWN)
        self.logger.info(f"完成 {len(results)} 个服务的健康检查，宕机 {down} 个")
        return results

    async def check_service(self, service_id: str) -> HealthCheckResult:
        """立即检查指定服务

        Args:
            service_id: 服务ID

        Returns:
            HealthCheckResult: 检查结果

        Raises:
            ServiceNotFoundError: 服务不存在
            StoreUnavailableError: 存储不可达
        """
        service = await self.get_service(service_id)
        self.logger.info(f"立即检查服务: {service.name}")
        return await self._check_and_save(service)

    async def _check_and_save(self, service: Service) -> HealthCheckResult:
        """探测单个服务并写入结果，写入失败只记录日志"""
        async with self._lock_for(service.id):
            result = await self.checker.check_health(service)

            save_result = await self.store.save_status(result.to_status_record())
            if not save_result.success:
                self.logger.error(
                    f"保存服务 {service.name} 的检查结果失败: {save_result.error}")

        return result

    async def get_service(self, service_id: str) -> Service:
        """按ID获取服务

        Raises:
            ServiceNotFoundError: 服务不存在
        """
        service = await self.store.get_service(service_id)
        if service is None:
            raise ServiceNotFoundError(service_id)
        return service

    async def latest_results(self) -> List[HealthCheckResult]:
        """获取每个服务最近的检查结果，从未检查过的服务状态为unknown"""
        latest = await self.store.latest_status_per_service()
        return [HealthCheckResult.from_record(service, record) for service, record in latest]

    async def current_snapshot(self) -> SystemHealthSnapshot:
        """计算当前系统健康快照

        Returns:
            SystemHealthSnapshot: 系统健康快照

        Raises:
            StoreUnavailableError: 存储不可达，无法判定健康状况
        """
        snapshot = build_snapshot(await self.latest_results())
        self.logger.debug(f"系统健康状态: {snapshot.status.value}, "
                          f"统计: {snapshot.summary.to_dict()}")
        return snapshot

    async def service_history(self, service_id: str,
                              limit: int = DEFAULT_HISTORY_LIMIT):
        """获取服务的状态历史，最新的在前

        Args:
            service_id: 服务ID
            limit: 最多返回的记录数

        Raises:
            ValidationError: limit 不是正整数或超过上限
            ServiceNotFoundError: 服务不存在
        """
        if not isinstance(limit, int) or isinstance(limit, bool) or limit <= 0:
            raise ValidationError(f"limit 必须是正整数: {limit}", field='limit')
        if limit > MAX_HISTORY_LIMIT:
            raise ValidationError(f"limit 不能超过 {MAX_HISTORY_LIMIT}: {limit}", field='limit')

        await self.get_service(service_id)
        return await self.store.history_for(service_id, limit)
