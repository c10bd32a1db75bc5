"""测试健康聚合器"""

import asyncio
import time

import pytest

from devxp_health.models.health_check import (HealthCheckResult, ServiceStatus, SystemStatus)
from devxp_health.services.health_aggregator import HealthAggregator, build_snapshot
from devxp_health.store.memory_store import InMemoryStatusStore
from devxp_health.utils.exceptions import (ServiceNotFoundError, StoreError,
                                           StoreUnavailableError, ValidationError)

from conftest import ScriptedChecker, make_records, make_service


def result_for(service_id, status, is_critical=False):
    return HealthCheckResult(service=make_service(service_id, is_critical=is_critical),
                             status=status)


class TestBuildSnapshot:
    """测试系统健康状态计算"""

    def test_empty_registry_is_healthy(self):
        """测试没有服务时系统健康"""
        snapshot = build_snapshot([])
        assert snapshot.status == SystemStatus.HEALTHY
        assert snapshot.summary.total == 0

    def test_critical_down_forces_down(self):
        """测试关键服务宕机时系统宕机"""
        snapshot = build_snapshot([
            result_for('a', ServiceStatus.DOWN, is_critical=True),
            result_for('b', ServiceStatus.UP),
            result_for('c', ServiceStatus.UP),
        ])

        assert snapshot.status == SystemStatus.DOWN
        assert snapshot.summary.critical_down == 1
        assert snapshot.summary.down == 1
        assert snapshot.summary.up == 2

    def test_non_critical_down_is_degraded(self):
        """测试非关键服务宕机时系统降级"""
        snapshot = build_snapshot([
            result_for('a', ServiceStatus.UP, is_critical=True),
            result_for('b', ServiceStatus.DOWN),
        ])

        assert snapshot.status == SystemStatus.DEGRADED
        assert snapshot.summary.critical_down == 0

    def test_degraded_service_is_degraded(self):
        """测试有服务降级时系统降级"""
        snapshot = build_snapshot([
            result_for('a', ServiceStatus.UP, is_critical=True),
            result_for('b', ServiceStatus.DEGRADED, is_critical=True),
        ])
        assert snapshot.status == SystemStatus.DEGRADED

    def test_unknown_does_not_degrade(self):
        """测试从未检查过的服务不影响系统状态"""
        snapshot = build_snapshot([
            result_for('a', ServiceStatus.UP),
            result_for('b', ServiceStatus.UNKNOWN, is_critical=True),
        ])

        assert snapshot.status == SystemStatus.HEALTHY
        assert snapshot.summary.unknown == 1

    def test_summary_counts_add_up(self):
        """测试各状态计数之和不超过总数"""
        snapshot = build_snapshot([
            result_for('a', ServiceStatus.UP),
            result_for('b', ServiceStatus.DOWN),
            result_for('c', ServiceStatus.DEGRADED),
            result_for('d', ServiceStatus.UNKNOWN),
        ])
        summary = snapshot.summary

        assert summary.up + summary.down + summary.degraded <= summary.total
        assert summary.critical_down <= summary.down
        assert [r.service_id for r in snapshot.services] == ['a', 'b', 'c', 'd']


class TestHealthAggregator:
    """测试HealthAggregator类"""

    @pytest.mark.asyncio
    async def test_check_all_writes_one_record_per_service(self, memory_store):
        """测试每个服务写入一条记录"""
        checker = ScriptedChecker({'svc-b': ServiceStatus.DEGRADED})
        aggregator = HealthAggregator(memory_store, checker)

        results = await aggregator.check_all()

        assert [r.service_id for r in results] == ['svc-a', 'svc-b', 'svc-c']
        for service_id in ('svc-a', 'svc-b', 'svc-c'):
            assert len(await memory_store.history_for(service_id, 10)) == 1
        assert (await memory_store.history_for('svc-b', 1))[0].status == ServiceStatus.DEGRADED

    @pytest.mark.asyncio
    async def test_check_all_empty_registry(self):
        """测试服务注册表为空"""
        aggregator = HealthAggregator(InMemoryStatusStore(), ScriptedChecker())
        assert await aggregator.check_all() == []

        snapshot = await aggregator.current_snapshot()
        assert snapshot.status == SystemStatus.HEALTHY

    @pytest.mark.asyncio
    async def test_critical_down_cycle(self, memory_store):
        """测试关键服务宕机后快照为宕机"""
        aggregator = HealthAggregator(memory_store, ScriptedChecker({'svc-a': ServiceStatus.DOWN}))

        await aggregator.check_all()
        snapshot = await aggregator.current_snapshot()

        assert snapshot.status == SystemStatus.DOWN
        assert snapshot.summary.to_dict() == {
            'total': 3, 'up': 2, 'down': 1, 'degraded': 0, 'unknown': 0, 'critical_down': 1
        }

    @pytest.mark.asyncio
    async def test_snapshot_is_idempotent(self, memory_store):
        """测试没有新写入时快照结果一致"""
        aggregator = HealthAggregator(memory_store, ScriptedChecker({'svc-b': ServiceStatus.DOWN}))
        await aggregator.check_all()

        first = await aggregator.current_snapshot()
        second = await aggregator.current_snapshot()

        assert first.status == second.status == SystemStatus.DEGRADED
        assert first.summary == second.summary
        assert [r.to_dict() for r in first.services] == [r.to_dict() for r in second.services]

    @pytest.mark.asyncio
    async def test_probes_run_concurrently(self):
        """测试50个服务并发探测，总耗时接近单个最慢探测"""
        store = InMemoryStatusStore()
        store.replace_services([make_service(f'svc-{i:02d}') for i in range(50)])
        aggregator = HealthAggregator(store, ScriptedChecker(delay=0.2))

        started = time.monotonic()
        results = await aggregator.check_all()
        elapsed = time.monotonic() - started

        assert len(results) == 50
        assert elapsed < 2.0

    @pytest.mark.asyncio
    async def test_save_failure_is_isolated(self, memory_store):
        """测试单个服务写入失败不影响其他服务"""
        original_append = memory_store.append_status

        async def flaky_append(record):
            if record.service_id == 'svc-b':
                raise StoreError('write rejected')
            await original_append(record)

        memory_store.append_status = flaky_append
        aggregator = HealthAggregator(memory_store, ScriptedChecker())

        results = await aggregator.check_all()

        assert len(results) == 3
        assert len(await memory_store.history_for('svc-a', 10)) == 1
        assert await memory_store.history_for('svc-b', 10) == []
        assert len(await memory_store.history_for('svc-c', 10)) == 1

    @pytest.mark.asyncio
    async def test_probe_exception_becomes_down(self, memory_store):
        """测试探测抛出异常时该服务记为宕机"""
        checker = ScriptedChecker(failures={'svc-c': RuntimeError('checker bug')})
        aggregator = HealthAggregator(memory_store, checker)

        results = await aggregator.check_all()
        by_id = {r.service_id: r for r in results}

        assert by_id['svc-c'].status == ServiceStatus.DOWN
        assert 'checker bug' in by_id['svc-c'].error_message
        assert by_id['svc-a'].status == ServiceStatus.UP

    @pytest.mark.asyncio
    async def test_registry_read_failure_propagates(self, memory_store):
        """测试无法读取注册表时整体失败"""
        async def unavailable():
            raise StoreUnavailableError('database down', operation='list_services')

        memory_store.list_services = unavailable
        aggregator = HealthAggregator(memory_store, ScriptedChecker())

        with pytest.raises(StoreUnavailableError):
            await aggregator.check_all()

    @pytest.mark.asyncio
    async def test_same_service_writes_are_ordered(self, memory_store):
        """测试同一服务的并发检查按顺序写入"""
        aggregator = HealthAggregator(memory_store, ScriptedChecker(delay=0.05))

        await asyncio.gather(aggregator.check_service('svc-a'),
                             aggregator.check_service('svc-a'))

        history = await memory_store.history_for('svc-a', 10)
        assert len(history) == 2
        assert history[0].checked_at >= history[1].checked_at

    @pytest.mark.asyncio
    async def test_check_service(self, memory_store):
        """测试单个服务立即检查"""
        checker = ScriptedChecker()
        aggregator = HealthAggregator(memory_store, checker)

        result = await aggregator.check_service('svc-b')

        assert result.service_id == 'svc-b'
        assert checker.calls == ['svc-b']

    @pytest.mark.asyncio
    async def test_check_unknown_service(self, memory_store):
        """测试检查不存在的服务"""
        aggregator = HealthAggregator(memory_store, ScriptedChecker())

        with pytest.raises(ServiceNotFoundError) as exc_info:
            await aggregator.check_service('ghost')
        assert exc_info.value.service_id == 'ghost'

    @pytest.mark.asyncio
    async def test_latest_results_unknown_fallback(self, memory_store):
        """测试从未检查过的服务状态为unknown"""
        aggregator = HealthAggregator(memory_store, ScriptedChecker())
        await aggregator.check_service('svc-a')

        results = {r.service_id: r.status for r in await aggregator.latest_results()}
        assert results == {'svc-a': ServiceStatus.UP, 'svc-b': ServiceStatus.UNKNOWN,
                           'svc-c': ServiceStatus.UNKNOWN}

    @pytest.mark.asyncio
    async def test_service_history_limit(self, memory_store):
        """测试150条记录只返回最新的100条"""
        records = make_records('svc-a', 150)
        for record in records:
            await memory_store.append_status(record)
        aggregator = HealthAggregator(memory_store, ScriptedChecker())

        history = await aggregator.service_history('svc-a')

        assert len(history) == 100
        assert history[0].id == records[-1].id
        assert all(a.checked_at >= b.checked_at for a, b in zip(history, history[1:]))

    @pytest.mark.asyncio
    async def test_service_history_validation(self, memory_store):
        """测试历史查询参数校验"""
        aggregator = HealthAggregator(memory_store, ScriptedChecker())

        with pytest.raises(ValidationError):
            await aggregator.service_history('svc-a', 0)
        with pytest.raises(ValidationError):
            await aggregator.service_history('svc-a', '10')
        with pytest.raises(ValidationError):
            await aggregator.service_history('svc-a', 1001)
        assert await aggregator.service_history('svc-a', 1000) == []
        with pytest.raises(ServiceNotFoundError):
            await aggregator.service_history('ghost', 10)

    @pytest.mark.asyncio
    async def test_locks_of_removed_services_are_dropped(self, memory_store):
        """测试从注册表移除的服务不再保留服务级锁"""
        aggregator = HealthAggregator(memory_store, ScriptedChecker())
        await aggregator.check_all()
        assert set(aggregator._service_locks) == {'svc-a', 'svc-b', 'svc-c'}

        memory_store.replace_services([make_service('svc-a', 'Alpha')])
        await aggregator.check_all()

        assert set(aggregator._service_locks) == {'svc-a'}
