"""实时推送模块

维护WebSocket订阅者集合，把系统健康快照广播给所有在线订阅者。
推送是尽力而为的：每个订阅者独立投递，失败的订阅者被移除并在后台关闭。
"""

import asyncio
import json
from typing import Any, Dict, List, Optional, Set

from ..models.health_check import HealthCheckResult, SystemHealthSnapshot, utcnow
from ..utils.log_manager import get_logger

MESSAGE_CONNECTED = 'connected'
MESSAGE_SYSTEM_HEALTH = 'system-health-update'
MESSAGE_SERVICE_HEALTH = 'health-update'


def build_message(message_type: str, data: Any) -> str:
    """
    构造推送消息信封并序列化

    Args:
        message_type: 消息类型
        data: 消息内容

    Returns:
        str: JSON字符串 {type, data, timestamp}
    """
    return json.dumps({
        'type': message_type,
        'data': data,
        'timestamp': utcnow().isoformat()
    }, ensure_ascii=False)


class SubscriberRegistry:
    """订阅者集合

    连接对象需提供 ``send_str()``、``close()`` 协程和 ``closed`` 属性
    （aiohttp 的 WebSocketResponse 即满足）。遍历时返回副本，
    因此广播过程中的增删不会影响正在进行的遍历。
    """

    def __init__(self):
        self._subscribers: Set[Any] = set()

    def add(self, connection) -> None:
        self._subscribers.add(connection)

    def discard(self, connection) -> bool:
        """移除订阅者，返回是否确实移除了"""
        if connection in self._subscribers:
            self._subscribers.discard(connection)
            return True
        return False

    def snapshot(self) -> List[Any]:
        return list(self._subscribers)

    def clear(self) -> None:
        self._subscribers.clear()

    def __contains__(self, connection) -> bool:
        return connection in self._subscribers

    def __len__(self) -> int:
        return len(self._subscribers)


class UpdateBroadcaster:
    """健康状态推送器"""

    def __init__(self, registry: Optional[SubscriberRegistry] = None,
                 send_timeout: float = 5.0):
        """初始化推送器

        Args:
            registry: 订阅者集合，默认新建
            send_timeout: 单个订阅者的发送超时（秒）
        """
        self.registry = registry if registry is not None else SubscriberRegistry()
        self.send_timeout = send_timeout
        self.messages_published = 0
        self._closing_tasks: Set[asyncio.Task] = set()
        self.logger = get_logger('broadcaster')

    @property
    def subscriber_count(self) -> int:
        return len(self.registry)

    async def subscribe(self, connection) -> bool:
        """注册订阅者并立即发送连接确认消息

        Args:
            connection: 订阅者连接

        Returns:
            bool: 确认消息是否发送成功，失败的连接不会留在集合中
        """
        self.registry.add(connection)
        hello = build_message(MESSAGE_CONNECTED, {'message': 'WebSocket connected'})
        if not await self._deliver(connection, hello):
            return False

        self.logger.info(f"WebSocket客户端已连接，当前订阅者: {len(self.registry)}")
        return True

    def unsubscribe(self, connection) -> None:
        """移除订阅者"""
        if self.registry.discard(connection):
            self.logger.info(f"WebSocket客户端已断开，当前订阅者: {len(self.registry)}")

    async def broadcast(self, message_type: str, data: Any) -> int:
        """向所有订阅者广播消息

        Args:
            message_type: 消息类型
            data: 消息内容

        Returns:
            int: 成功投递的订阅者数量
        """
        self.prune_closed()
        subscribers = self.registry.snapshot()
        if not subscribers:
            self.logger.debug(f"没有订阅者，跳过广播 {message_type}")
            return 0

        message = build_message(message_type, data)
        outcomes = await asyncio.gather(
            *(self._deliver(connection, message) for connection in subscribers)
        )
        delivered = sum(1 for ok in outcomes if ok)
        self.messages_published += 1

        self.logger.info(f"广播 {message_type} 到 {delivered}/{len(subscribers)} 个客户端")
        return delivered

    async def publish(self, snapshot: SystemHealthSnapshot) -> int:
        """广播系统健康快照"""
        return await self.broadcast(MESSAGE_SYSTEM_HEALTH, snapshot.to_dict())

    async def notify_service_update(self, result: HealthCheckResult) -> int:
        """广播单个服务的状态更新"""
        return await self.broadcast(MESSAGE_SERVICE_HEALTH, {
            'service_id': result.service_id,
            'status': result.status.value
        })

    async def _deliver(self, connection, message: str) -> bool:
        """向单个订阅者发送消息，失败时将其移除并关闭连接"""
        if getattr(connection, 'closed', False):
            self.unsubscribe(connection)
            return False

        try:
            await asyncio.wait_for(connection.send_str(message), timeout=self.send_timeout)
            return True
        except asyncio.TimeoutError:
            self.logger.warning(f"向订阅者发送消息超时 ({self.send_timeout}s)，移除该订阅者")
        except Exception as e:
            self.logger.warning(f"向订阅者发送消息失败，移除该订阅者: {type(e).__name__}: {e}")

        self.unsubscribe(connection)
        self._schedule_close(connection)
        return False

    def _schedule_close(self, connection) -> None:
        """后台关闭被移除的连接，不阻塞其他订阅者的投递"""
        task = asyncio.create_task(self._close_connection(connection))
        self._closing_tasks.add(task)
        task.add_done_callback(self._closing_tasks.discard)

    async def _close_connection(self, connection) -> None:
        try:
            await connection.close()
        except Exception as e:
            self.logger.debug(f"关闭订阅者连接失败: {e}")

    def prune_closed(self) -> int:
        """移除已关闭的连接

        Returns:
            int: 移除的数量
        """
        removed = 0
        for connection in self.registry.snapshot():
            if getattr(connection, 'closed', False):
                self.registry.discard(connection)
                removed += 1
        if removed:
            self.logger.debug(f"清理了 {removed} 个已关闭的订阅者连接")
        return removed

    async def close_all(self) -> None:
        """关闭所有订阅者连接"""
        subscribers = self.registry.snapshot()
        self.registry.clear()
        for connection in subscribers:
            await self._close_connection(connection)
        await self.wait_closing()
        if subscribers:
            self.logger.info(f"已关闭 {len(subscribers)} 个订阅者连接")

    async def wait_closing(self) -> None:
        """等待后台关闭中的连接完成"""
        if self._closing_tasks:
            await asyncio.gather(*list(self._closing_tasks), return_exceptions=True)

    def get_stats(self) -> Dict[str, Any]:
        return {
            'subscribers': len(self.registry),
            'messages_published': self.messages_published,
            'send_timeout': self.send_timeout
        }
