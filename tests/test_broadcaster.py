"""测试实时推送"""

import json

import pytest

from devxp_health.models.health_check import (HealthCheckResult, HealthSummary, ServiceStatus,
                                              SystemHealthSnapshot, SystemStatus)
from devxp_health.services.broadcaster import (MESSAGE_CONNECTED, MESSAGE_SERVICE_HEALTH,
                                               MESSAGE_SYSTEM_HEALTH, SubscriberRegistry,
                                               UpdateBroadcaster, build_message)

from conftest import FakeConnection, make_service


def make_snapshot(status=SystemStatus.HEALTHY):
    return SystemHealthSnapshot(status=status, services=[], summary=HealthSummary())


class TestBuildMessage:
    """测试消息信封"""

    def test_envelope(self):
        """测试消息包含类型、内容和时间戳"""
        message = json.loads(build_message('custom', {'k': 'v'}))

        assert message['type'] == 'custom'
        assert message['data'] == {'k': 'v'}
        assert 'timestamp' in message


class TestSubscriberRegistry:
    """测试SubscriberRegistry类"""

    def test_add_and_discard(self):
        """测试增删订阅者"""
        registry = SubscriberRegistry()
        conn = FakeConnection()

        registry.add(conn)
        assert conn in registry
        assert len(registry) == 1

        assert registry.discard(conn) is True
        assert registry.discard(conn) is False
        assert len(registry) == 0

    def test_snapshot_is_a_copy(self):
        """测试遍历副本时修改集合不受影响"""
        registry = SubscriberRegistry()
        connections = [FakeConnection() for _ in range(3)]
        for conn in connections:
            registry.add(conn)

        for conn in registry.snapshot():
            registry.discard(conn)

        assert len(registry) == 0


class TestUpdateBroadcaster:
    """测试UpdateBroadcaster类"""

    @pytest.mark.asyncio
    async def test_subscribe_sends_hello(self):
        """测试订阅后立即收到连接确认"""
        broadcaster = UpdateBroadcaster()
        conn = FakeConnection()

        assert await broadcaster.subscribe(conn) is True

        assert broadcaster.subscriber_count == 1
        assert json.loads(conn.sent[0])['type'] == MESSAGE_CONNECTED

    @pytest.mark.asyncio
    async def test_subscribe_failure_not_registered(self):
        """测试确认消息发送失败的连接不保留"""
        broadcaster = UpdateBroadcaster()
        conn = FakeConnection(fail_with=ConnectionResetError('reset'))

        assert await broadcaster.subscribe(conn) is False
        assert broadcaster.subscriber_count == 0

    @pytest.mark.asyncio
    async def test_publish_skips_closed_subscriber(self):
        """测试三个订阅者中一个已关闭，只投递给其余两个并移除关闭的"""
        broadcaster = UpdateBroadcaster()
        open_a, open_b, closed = FakeConnection(), FakeConnection(), FakeConnection()
        for conn in (open_a, open_b, closed):
            await broadcaster.subscribe(conn)
        closed.closed = True

        delivered = await broadcaster.publish(make_snapshot(SystemStatus.DEGRADED))

        assert delivered == 2
        assert broadcaster.subscriber_count == 2
        assert closed not in broadcaster.registry
        assert len(closed.sent) == 1
        for conn in (open_a, open_b):
            message = json.loads(conn.sent[-1])
            assert message['type'] == MESSAGE_SYSTEM_HEALTH
            assert message['data']['status'] == 'degraded'

    @pytest.mark.asyncio
    async def test_publish_removes_failing_subscriber(self):
        """测试发送失败的订阅者被移除，其他订阅者不受影响"""
        broadcaster = UpdateBroadcaster()
        healthy, broken = FakeConnection(), FakeConnection()
        await broadcaster.subscribe(healthy)
        await broadcaster.subscribe(broken)
        broken.fail_with = ConnectionResetError('peer gone')

        delivered = await broadcaster.publish(make_snapshot())

        assert delivered == 1
        assert broken not in broadcaster.registry
        assert healthy in broadcaster.registry

        await broadcaster.wait_closing()
        assert broken.close_calls == 1

    @pytest.mark.asyncio
    async def test_unexpected_send_error_does_not_reach_publisher(self):
        """测试订阅者抛出任意异常都不会影响发布方"""
        broadcaster = UpdateBroadcaster()
        healthy, broken = FakeConnection(), FakeConnection()
        await broadcaster.subscribe(healthy)
        await broadcaster.subscribe(broken)
        broken.fail_with = OSError(9, 'Bad file descriptor')

        delivered = await broadcaster.publish(make_snapshot())

        assert delivered == 1
        assert broken not in broadcaster.registry
        assert json.loads(healthy.sent[-1])['type'] == MESSAGE_SYSTEM_HEALTH

        rejected = FakeConnection(fail_with=ValueError('bad frame'))
        assert await broadcaster.subscribe(rejected) is False
        assert broadcaster.subscriber_count == 1

    @pytest.mark.asyncio
    async def test_publish_removes_slow_subscriber(self):
        """测试发送超时的订阅者被移除"""
        broadcaster = UpdateBroadcaster(send_timeout=0.05)
        fast, slow = FakeConnection(), FakeConnection()
        await broadcaster.subscribe(fast)
        await broadcaster.subscribe(slow)
        slow.send_delay = 1.0

        delivered = await broadcaster.publish(make_snapshot())

        assert delivered == 1
        assert slow not in broadcaster.registry

        await broadcaster.wait_closing()
        assert slow.close_calls == 1
        assert slow.closed is True
        assert fast.close_calls == 0

    @pytest.mark.asyncio
    async def test_publish_without_subscribers(self):
        """测试没有订阅者时直接返回"""
        broadcaster = UpdateBroadcaster()
        assert await broadcaster.publish(make_snapshot()) == 0
        assert broadcaster.messages_published == 0

    @pytest.mark.asyncio
    async def test_notify_service_update(self):
        """测试单个服务状态更新消息"""
        broadcaster = UpdateBroadcaster()
        conn = FakeConnection()
        await broadcaster.subscribe(conn)

        result = HealthCheckResult(service=make_service('svc-a'), status=ServiceStatus.DOWN)
        await broadcaster.notify_service_update(result)

        message = json.loads(conn.sent[-1])
        assert message['type'] == MESSAGE_SERVICE_HEALTH
        assert message['data'] == {'service_id': 'svc-a', 'status': 'down'}

    @pytest.mark.asyncio
    async def test_unsubscribe_and_close_all(self):
        """测试退订和关闭全部连接"""
        broadcaster = UpdateBroadcaster()
        first, second = FakeConnection(), FakeConnection()
        await broadcaster.subscribe(first)
        await broadcaster.subscribe(second)

        broadcaster.unsubscribe(first)
        broadcaster.unsubscribe(first)
        assert broadcaster.subscriber_count == 1

        await broadcaster.close_all()
        assert broadcaster.subscriber_count == 0
        assert second.close_calls == 1
        assert broadcaster.get_stats()['subscribers'] == 0
