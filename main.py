#!/usr/bin/env python3
"""
服务健康门户主应用程序入口

组装状态存储、探测器、聚合器、推送器、调度器和HTTP服务，
实现启动、优雅关闭和信号处理。
"""

import argparse
import asyncio
import logging
import signal
import sys
from typing import Optional, Dict, Any

from aiohttp import web

from devxp_health import __version__
from devxp_health.api.server import create_app, start_web_server
from devxp_health.checkers.http_checker import HttpHealthChecker
from devxp_health.models.health_check import ServiceStatus, SystemStatus, Service
from devxp_health.services.broadcaster import UpdateBroadcaster
from devxp_health.services.config_manager import ConfigManager
from devxp_health.services.config_watcher import ConfigWatcher
from devxp_health.services.health_aggregator import HealthAggregator
from devxp_health.services.monitor_scheduler import HealthScheduler
from devxp_health.store import status_store_factory, BaseStatusStore, InMemoryStatusStore
from devxp_health.utils.error_handler import retry_on_error
from devxp_health.utils.exceptions import (HealthMonitorError, ConfigError,
                                           StoreUnavailableError)
from devxp_health.utils.log_manager import log_manager, get_logger


class HealthPortalApp:
    """服务健康门户主应用程序类"""

    def __init__(self, config_path: Optional[str] = None,
                 overrides: Optional[Dict[str, Any]] = None):
        """初始化应用程序

        Args:
            config_path: 配置文件路径，为None时只使用默认值和环境变量
            overrides: 命令行覆盖项，支持 log_level、host、port
        """
        self.config_path = config_path
        self.overrides = overrides or {}
        self.logger: Optional[logging.Logger] = None
        self.is_running = False
        self.shutdown_event = asyncio.Event()

        # 核心组件
        self.config_manager: Optional[ConfigManager] = None
        self.config_watcher: Optional[ConfigWatcher] = None
        self.store: Optional[BaseStatusStore] = None
        self.checker: Optional[HttpHealthChecker] = None
        self.aggregator: Optional[HealthAggregator] = None
        self.broadcaster: Optional[UpdateBroadcaster] = None
        self.scheduler: Optional[HealthScheduler] = None
        self.web_app: Optional[web.Application] = None
        self.runner: Optional[web.AppRunner] = None

        self.background_tasks = set()

    async def initialize(self):
        """初始化应用程序组件"""
        try:
            self.config_manager = ConfigManager(self.config_path)
            self.config_manager.load_config()
            self._apply_overrides()

            global_config = self.config_manager.get_global_config()
            server_config = self.config_manager.get_server_config()

            log_manager.configure_from_global(global_config)
            self.logger = get_logger('main')
            self.logger.info("开始初始化服务健康门户")

            self.store = status_store_factory.create_store(self.config_manager.get_store_config())
            self.checker = HttpHealthChecker({
                'timeout': global_config['probe_timeout'],
                'headers': global_config.get('probe_headers') or {}
            })
            self.aggregator = HealthAggregator(self.store, self.checker)
            self.broadcaster = UpdateBroadcaster(
                send_timeout=server_config.get('ws_send_timeout', 5.0))
            self.scheduler = HealthScheduler(
                self.aggregator,
                self.broadcaster,
                check_interval=global_config['check_interval'],
                enabled=self.config_manager.periodic_checks_enabled(),
                run_on_start=global_config.get('run_on_start', False)
            )
            self.web_app = create_app(self.store, self.aggregator, self.scheduler,
                                      self.broadcaster, server_config)

            self.config_watcher = ConfigWatcher(self.config_manager)
            self.config_watcher.add_change_callback(self._on_config_changed_callback)

            self.logger.info("应用程序组件初始化完成")

        except Exception as e:
            if self.logger:
                self.logger.error(f"应用程序初始化失败: {e}", exc_info=True)
            else:
                print(f"应用程序初始化失败: {e}", file=sys.stderr)
            raise

    def _apply_overrides(self):
        """命令行参数优先于配置文件和环境变量"""
        if self.overrides.get('log_level'):
            self.config_manager.get_global_config()['log_level'] = self.overrides['log_level']
        for key in ('host', 'port'):
            if self.overrides.get(key) is not None:
                self.config_manager.get_server_config()[key] = self.overrides[key]

    async def open_store(self):
        """打开状态存储并等待其可达

        Raises:
            StoreUnavailableError: 重试耗尽后存储仍不可达
        """
        store_config = self.config_manager.get_store_config()

        @retry_on_error(max_attempts=store_config.get('connect_retries', 5),
                        base_delay=store_config.get('connect_retry_delay', 1.0),
                        retryable_errors=[StoreUnavailableError])
        async def wait_until_ready():
            await self.store.ping()

        await self.store.open()
        await wait_until_ready()
        self.logger.info(f"状态存储已就绪: {self.store.store_type}")

    def _on_config_changed_callback(self, old_config: Dict[str, Any],
                                    new_config: Dict[str, Any]):
        """配置文件变更回调"""
        global_config = new_config.get('global', {})
        old_global = old_config.get('global', {})
        log_keys = ('log_level', 'log_file', 'max_log_size', 'log_backup_count')
        if any(global_config.get(key) != old_global.get(key) for key in log_keys):
            log_manager.configure_from_global(global_config)
            self.logger.info(f"日志配置已更新，级别 {global_config.get('log_level', 'INFO')}")

        if isinstance(self.store, InMemoryStatusStore):
            self.store.replace_services(
                [Service.from_dict(item) for item in new_config.get('services', [])])

        for section in ('server', 'store'):
            if old_config.get(section) != new_config.get(section):
                self.logger.warning(f"{section} 配置变更需要重启后生效")

    async def start(self):
        """启动应用程序"""
        if self.is_running:
            self.logger.warning("应用程序已经在运行")
            return

        try:
            self.is_running = True
            self.logger.info("启动服务健康门户")

            await self.open_store()

            server_config = self.config_manager.get_server_config()
            self.runner = await start_web_server(self.web_app, server_config['host'],
                                                 server_config['port'])

            await self.scheduler.start()

            self.config_watcher.start_watching()
            watcher_task = asyncio.create_task(
                self.config_watcher.watch_config_changes_async()
            )
            self.background_tasks.add(watcher_task)
            watcher_task.add_done_callback(self.background_tasks.discard)

            self.logger.info("服务健康门户启动完成")

            await self.shutdown_event.wait()

        except Exception as e:
            self.logger.error(f"应用程序运行异常: {e}", exc_info=True)
            raise
        finally:
            await self.stop()

    async def stop(self):
        """停止应用程序"""
        if not self.is_running:
            return

        self.logger.info("正在停止服务健康门户...")
        self.is_running = False

        if self.scheduler:
            await self.scheduler.stop()

        if self.config_watcher:
            self.config_watcher.stop_watching()

        for task in self.background_tasks:
            if not task.done():
                task.cancel()
        if self.background_tasks:
            await asyncio.gather(*self.background_tasks, return_exceptions=True)
        self.background_tasks.clear()

        # runner.cleanup() 会触发 on_shutdown，关闭所有WebSocket订阅者
        if self.runner:
            await self.runner.cleanup()
            self.runner = None

        if self.store:
            await self.store.close()

        self.logger.info("服务健康门户已停止")

    def shutdown(self):
        """触发应用程序关闭"""
        if self.logger:
            self.logger.info("收到关闭信号")
        self.shutdown_event.set()

    def get_status(self) -> Dict[str, Any]:
        """获取应用程序状态

        Returns:
            应用程序状态信息
        """
        status = {
            'is_running': self.is_running,
            'config_path': self.config_path,
            'background_tasks_count': len(self.background_tasks)
        }

        if self.store:
            status['store'] = self.store.store_type
        if self.scheduler:
            status['scheduler_stats'] = self.scheduler.get_scheduler_stats()
        if self.broadcaster:
            status['broadcaster_stats'] = self.broadcaster.get_stats()

        return status


def create_argument_parser() -> argparse.ArgumentParser:
    """创建命令行参数解析器"""
    parser = argparse.ArgumentParser(
        prog='devxp-health',
        description='服务健康门户 - 定时探测服务状态，记录历史并实时推送系统健康状况',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
示例用法:
  %(prog)s config.yaml                    # 使用指定配置文件启动
  %(prog)s --validate config.yaml        # 验证配置文件格式
  %(prog)s --check-once config.yaml      # 执行一次健康检查后退出
  %(prog)s --port 8080 config.yaml       # 覆盖监听端口

环境变量:
  DEVXP_ENV=test           测试模式，关闭定时检查
  HEALTH_CHECK_INTERVAL    检查间隔（秒）
  HEALTH_CHECK_TIMEOUT     探测超时（秒）
  DATABASE_URL             PostgreSQL连接串
  PORT / LOG_LEVEL         监听端口 / 日志级别

配置文件格式请参考 config/example.yaml
        """
    )

    parser.add_argument(
        'config_file',
        nargs='?',
        help='YAML配置文件路径（可省略，仅使用默认值和环境变量）'
    )

    parser.add_argument(
        '--version', '-v',
        action='version',
        version=f'%(prog)s {__version__}'
    )

    parser.add_argument(
        '--validate',
        action='store_true',
        help='验证配置文件格式并退出'
    )

    parser.add_argument(
        '--check-once',
        action='store_true',
        help='执行一次健康检查后退出，退出码反映系统健康状态'
    )

    parser.add_argument(
        '--log-level',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
        help='设置日志级别（覆盖配置文件设置）'
    )

    parser.add_argument(
        '--host',
        help='HTTP监听地址（覆盖配置文件设置）'
    )

    parser.add_argument(
        '--port',
        type=int,
        help='HTTP监听端口（覆盖配置文件设置）'
    )

    return parser


def validate_config_file(config_path: Optional[str]) -> bool:
    """验证配置文件

    Args:
        config_path: 配置文件路径

    Returns:
        验证是否成功
    """
    print(f"正在验证配置文件: {config_path or '(默认配置)'}")
    try:
        config = ConfigManager(config_path).load_config()
    except ConfigError as e:
        print(f"❌ 配置文件验证失败: {e}")
        return False

    services = config.get('services', [])
    print("✅ 配置文件验证成功!")
    print(f"   - 存储类型: {config['store']['type']}")
    print(f"   - 检查间隔: {config['global']['check_interval']} 秒")
    print(f"   - 服务数量: {len(services)}")
    for service_config in services:
        critical = ' [关键]' if service_config.get('is_critical') else ''
        print(f"     * {service_config['name']} -> {service_config['url']}{critical}")

    return True


async def check_once(config_path: Optional[str]) -> bool:
    """执行一次健康检查

    Args:
        config_path: 配置文件路径

    Returns:
        系统是否健康
    """
    print(f"正在执行健康检查: {config_path or '(默认配置)'}")
    app = HealthPortalApp(config_path)
    try:
        await app.initialize()
        await app.open_store()
        cycle = await app.scheduler.run_cycle(trigger='on-demand')
    except HealthMonitorError as e:
        print(f"❌ 健康检查失败: {e}")
        return False
    finally:
        if app.store:
            await app.store.close()

    print(f"健康检查完成，共检查 {len(cycle.results)} 个服务:")
    for result in cycle.results:
        mark = '✅' if result.status == ServiceStatus.UP else '❌'
        line = f"   {mark} {result.service.name}: {result.status.value}"
        if result.response_time_ms is not None:
            line += f" ({result.response_time_ms}ms)"
        if result.error_message:
            line += f" - {result.error_message}"
        print(line)

    print(f"系统状态: {cycle.snapshot.status.value}")
    return cycle.snapshot.status == SystemStatus.HEALTHY


async def main(argv=None) -> int:
    """主函数，返回进程退出码"""
    parser = create_argument_parser()
    args = parser.parse_args(argv)
    config_path = args.config_file

    if args.validate:
        return 0 if validate_config_file(config_path) else 1

    if args.check_once:
        return 0 if await check_once(config_path) else 1

    app = HealthPortalApp(config_path, overrides={
        'log_level': args.log_level,
        'host': args.host,
        'port': args.port
    })

    try:
        await app.initialize()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, app.shutdown)
            except NotImplementedError:
                # Windows 不支持 add_signal_handler，依赖 KeyboardInterrupt
                pass

        server_config = app.config_manager.get_server_config()
        print(f"服务健康门户 v{__version__} 已启动")
        print(f"监听地址: http://{server_config['host']}:{server_config['port']}")
        print("按 Ctrl+C 停止程序")

        await app.start()

    except ConfigError as e:
        print(f"配置错误: {e}", file=sys.stderr)
        return 1
    except StoreUnavailableError as e:
        print(f"状态存储不可达，拒绝启动: {e}", file=sys.stderr)
        return 1
    except HealthMonitorError as e:
        print(f"服务健康门户错误: {e}", file=sys.stderr)
        return 1
    except OSError as e:
        print(f"HTTP服务启动失败: {e}", file=sys.stderr)
        return 1
    finally:
        log_manager.cleanup()

    return 0


def cli():
    """命令行入口"""
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        print("\n用户中断程序")
        sys.exit(130)


if __name__ == "__main__":
    cli()
