"""监控调度器模块

按固定间隔驱动"探测 -> 写入 -> 聚合 -> 推送"检查周期，同时支持按需触发
"""

import asyncio
from datetime import datetime
from typing import Dict, Any, Optional, Set

from .broadcaster import UpdateBroadcaster
from .health_aggregator import HealthAggregator
from ..models.health_check import CycleResult, utcnow
from ..utils.exceptions import SchedulerError
from ..utils.log_manager import get_logger

DEFAULT_CHECK_INTERVAL = 300


class HealthScheduler:
    """监控调度器

    定时周期按固定节拍触发：每个周期作为独立任务运行，慢周期不会推迟下一次触发。
    周期内的任何异常都只记录日志，循环只会在 stop() 时结束。
    """

    def __init__(self, aggregator: HealthAggregator, broadcaster: UpdateBroadcaster,
                 check_interval: float = DEFAULT_CHECK_INTERVAL,
                 enabled: bool = True, run_on_start: bool = False):
        """初始化监控调度器

        Args:
            aggregator: 健康聚合器
            broadcaster: 推送器
            check_interval: 定时检查间隔（秒）
            enabled: 是否启用定时检查，测试模式下关闭
            run_on_start: 启动后是否立即执行一次检查
        """
        if check_interval <= 0:
            raise SchedulerError(f"检查间隔必须是正数: {check_interval}")

        self.aggregator = aggregator
        self.broadcaster = broadcaster
        self.check_interval = check_interval
        self.enabled = enabled
        self.run_on_start = run_on_start

        self.is_running = False
        self._loop_task: Optional[asyncio.Task] = None
        self.running_tasks: Set[asyncio.Task] = set()

        self.cycles_completed = 0
        self.cycles_failed = 0
        self.last_cycle_at: Optional[datetime] = None
        self.last_status: Optional[str] = None
        self.last_error: Optional[str] = None

        self.logger = get_logger('scheduler')

    async def run_cycle(self, trigger: str = 'periodic') -> CycleResult:
        """执行一次完整检查周期

        Args:
            trigger: 触发来源，periodic 或 on-demand

        Returns:
            CycleResult: 本周期的检查结果和系统快照

        Raises:
            StoreUnavailableError: 存储不可达
        """
        started = asyncio.get_running_loop().time()

        results = await self.aggregator.check_all()
        snapshot = await self.aggregator.current_snapshot()
        delivered = await self.broadcaster.publish(snapshot)

        self.cycles_completed += 1
        self.last_cycle_at = utcnow()
        self.last_status = snapshot.status.value

        elapsed = asyncio.get_running_loop().time() - started
        self.logger.info(
            f"检查周期完成 ({trigger}): 系统状态={snapshot.status.value}, "
            f"服务数={snapshot.summary.total}, 推送={delivered}, 耗时={elapsed:.3f}s"
        )
        return CycleResult(results=results, snapshot=snapshot, trigger=trigger,
                           delivered=delivered)

    async def trigger_now(self) -> CycleResult:
        """按需触发一次检查周期，调用方等待周期完成"""
        self.logger.info("收到按需检查请求")
        return await self.run_cycle(trigger='on-demand')

    async def _run_periodic_cycle(self):
        """执行定时周期，吞掉并记录所有异常"""
        try:
            await self.run_cycle()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.cycles_failed += 1
            self.last_error = str(e)
            self.logger.error(f"定时健康检查失败: {e}")

    def _spawn_cycle(self):
        task = asyncio.create_task(self._run_periodic_cycle())
        self.running_tasks.add(task)
        task.add_done_callback(self.running_tasks.discard)

    async def start(self):
        """启动定时检查"""
        if not self.enabled:
            self.logger.info("定时健康检查已禁用")
            return

        if self.is_running:
            self.logger.warning("监控调度器已经在运行")
            return

        self.is_running = True
        self._loop_task = asyncio.create_task(self._schedule_loop())
        self.logger.info(f"定时健康检查已启动，间隔 {self.check_interval:g} 秒")

    async def _schedule_loop(self):
        """调度循环"""
        loop = asyncio.get_running_loop()
        if self.run_on_start:
            self._spawn_cycle()

        next_tick = loop.time() + self.check_interval
        while self.is_running:
            await asyncio.sleep(max(0.0, next_tick - loop.time()))
            if not self.is_running:
                break

            self.logger.debug("执行定时健康检查")
            self._spawn_cycle()

            next_tick += self.check_interval
            # 事件循环长时间阻塞后不补跑错过的节拍
            if next_tick < loop.time():
                next_tick = loop.time() + self.check_interval

    async def stop(self):
        """停止定时检查并取消进行中的周期"""
        if not self.is_running:
            return

        self.is_running = False
        self.logger.info("正在停止监控调度器...")

        tasks = list(self.running_tasks)
        if self._loop_task is not None:
            tasks.append(self._loop_task)

        for task in tasks:
            if not task.done():
                task.cancel()

        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        self.running_tasks.clear()
        self._loop_task = None
        self.logger.info("监控调度器已停止")

    def get_scheduler_stats(self) -> Dict[str, Any]:
        """获取调度器统计信息

        Returns:
            调度器统计信息
        """
        return {
            'enabled': self.enabled,
            'is_running': self.is_running,
            'check_interval': self.check_interval,
            'cycles_completed': self.cycles_completed,
            'cycles_failed': self.cycles_failed,
            'running_cycles': len(self.running_tasks),
            'last_cycle_at': self.last_cycle_at.isoformat() if self.last_cycle_at else None,
            'last_status': self.last_status,
            'last_error': self.last_error
        }
