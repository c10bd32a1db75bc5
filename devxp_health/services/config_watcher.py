"""配置文件监控器"""

import asyncio
import os
from typing import Callable, Optional, List

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from .config_manager import ConfigManager
from ..utils.exceptions import ConfigError
from ..utils.log_manager import get_logger


class ConfigFileHandler(FileSystemEventHandler):
    """配置文件变更事件处理器"""

    def __init__(self, config_path: str, callback: Callable[[], None]):
        """
        初始化事件处理器

        Args:
            config_path: 配置文件绝对路径
            callback: 配置变更回调函数
        """
        self.config_path = config_path
        self.callback = callback
        self.logger = get_logger('config_watcher')

    def on_modified(self, event):
        """处理文件修改事件"""
        if not event.is_directory and os.path.abspath(event.src_path) == self.config_path:
            self.logger.info(f"检测到配置文件变更: {self.config_path}")
            self.callback()


class ConfigWatcher:
    """配置文件监控器，支持热更新

    watchdog 观察者线程只负责把变更通知投递回事件循环，
    真正的重新加载在事件循环中执行。
    """

    def __init__(self, config_manager: ConfigManager):
        """
        初始化配置监控器

        Args:
            config_manager: 配置管理器实例
        """
        self.config_manager = config_manager
        self.observer: Optional[Observer] = None
        self.change_callbacks: List[Callable] = []
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._running = False
        self.logger = get_logger('config_watcher')

    def add_change_callback(self, callback: Callable):
        """
        添加配置变更回调函数

        Args:
            callback: 回调函数，参数为 (旧配置, 新配置)
        """
        self.change_callbacks.append(callback)

    def _on_config_changed(self):
        """重新加载配置并通知回调"""
        if not self.config_manager.is_config_changed():
            return

        old_config = self.config_manager.config
        try:
            new_config = self.config_manager.reload_config()
        except ConfigError as e:
            self.logger.error(f"配置重新加载失败，继续使用旧配置: {e}")
            return

        self.logger.info("配置文件已重新加载")
        for callback in self.change_callbacks:
            try:
                callback(old_config, new_config)
            except Exception as e:
                self.logger.error(f"配置变更回调执行失败: {e}", exc_info=True)

    def _notify_from_thread(self):
        """watchdog线程中调用，转交给事件循环"""
        if self._loop is not None and not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._on_config_changed)

    def start_watching(self):
        """开始监控配置文件

        Raises:
            ConfigError: 启动监控失败
        """
        if self._running:
            self.logger.warning("配置监控器已经在运行")
            return

        if not self.config_manager.config_path:
            self.logger.info("未使用配置文件，跳过配置监控")
            return

        try:
            self._loop = asyncio.get_running_loop()
            config_path = os.path.abspath(self.config_manager.config_path)

            self.observer = Observer()
            handler = ConfigFileHandler(config_path, self._notify_from_thread)
            self.observer.schedule(handler, os.path.dirname(config_path), recursive=False)
            self.observer.start()
            self._running = True

            self.logger.info(f"开始监控配置文件: {config_path}")

        except (OSError, RuntimeError) as e:
            raise ConfigError(f"启动配置监控失败: {e}", cause=e)

    def stop_watching(self):
        """停止监控配置文件"""
        if not self._running:
            return

        if self.observer:
            self.observer.stop()
            self.observer.join()
            self.observer = None

        self._running = False
        self._loop = None
        self.logger.info("配置文件监控已停止")

    def is_running(self) -> bool:
        return self._running

    async def watch_config_changes_async(self, check_interval: float = 5):
        """
        轮询方式监控配置变更，作为文件系统事件的补充

        Args:
            check_interval: 检查间隔（秒）
        """
        self.logger.debug(f"开始轮询配置文件变更，检查间隔: {check_interval}秒")

        while True:
            await asyncio.sleep(check_interval)
            try:
                self._on_config_changed()
            except Exception as e:
                self.logger.error(f"配置监控过程中发生错误: {e}")
