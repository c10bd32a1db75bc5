"""测试配置监控器"""

import asyncio
import os
import tempfile
import time
from unittest.mock import Mock

import pytest

from devxp_health.services.config_manager import ConfigManager
from devxp_health.services.config_watcher import ConfigWatcher

CONFIG = """
global:
  check_interval: 30
  log_level: INFO

services:
  - id: user-service
    name: User Service
    url: http://localhost:3001/health
"""


class TestConfigWatcher:
    """测试ConfigWatcher类"""

    def setup_method(self):
        """测试前准备"""
        self.temp_file = tempfile.NamedTemporaryFile(mode='w', suffix='.yaml', delete=False)
        self.temp_file.write(CONFIG)
        self.temp_file.close()

        self.config_manager = ConfigManager(self.temp_file.name, environ={})
        self.config_manager.load_config()
        self.config_watcher = ConfigWatcher(self.config_manager)

    def teardown_method(self):
        """测试后清理"""
        self.config_watcher.stop_watching()
        try:
            os.unlink(self.temp_file.name)
        except FileNotFoundError:
            pass

    def _rewrite(self, content: str):
        with open(self.temp_file.name, 'w') as f:
            f.write(content)
        future = time.time() + 5
        os.utime(self.temp_file.name, (future, future))

    def test_unchanged_file_does_not_notify(self):
        """测试文件未修改时不触发回调"""
        callback = Mock()
        self.config_watcher.add_change_callback(callback)

        self.config_watcher._on_config_changed()

        callback.assert_not_called()

    def test_change_notifies_callbacks(self):
        """测试文件修改后回调收到新旧配置"""
        callback = Mock()
        self.config_watcher.add_change_callback(callback)

        self._rewrite(CONFIG.replace('check_interval: 30', 'check_interval: 90'))
        self.config_watcher._on_config_changed()

        callback.assert_called_once()
        old_config, new_config = callback.call_args.args
        assert old_config['global']['check_interval'] == 30
        assert new_config['global']['check_interval'] == 90

    def test_invalid_change_keeps_old_config(self):
        """测试修改后的配置无效时不触发回调"""
        callback = Mock()
        self.config_watcher.add_change_callback(callback)

        self._rewrite("global:\n  check_interval: 0\n")
        self.config_watcher._on_config_changed()

        callback.assert_not_called()
        assert self.config_manager.config['global']['check_interval'] == 30

    def test_callback_error_does_not_stop_others(self):
        """测试一个回调失败不影响其他回调"""
        failing = Mock(side_effect=RuntimeError("boom"))
        succeeding = Mock()
        self.config_watcher.add_change_callback(failing)
        self.config_watcher.add_change_callback(succeeding)

        self._rewrite(CONFIG.replace('log_level: INFO', 'log_level: DEBUG'))
        self.config_watcher._on_config_changed()

        succeeding.assert_called_once()

    @pytest.mark.asyncio
    async def test_start_and_stop_watching(self):
        """测试启动和停止文件监控"""
        self.config_watcher.start_watching()
        assert self.config_watcher.is_running() is True

        self.config_watcher.start_watching()
        assert self.config_watcher.is_running() is True

        self.config_watcher.stop_watching()
        assert self.config_watcher.is_running() is False

    @pytest.mark.asyncio
    async def test_without_config_file(self):
        """测试未使用配置文件时不启动监控"""
        manager = ConfigManager(environ={})
        manager.load_config()
        watcher = ConfigWatcher(manager)

        watcher.start_watching()
        assert watcher.is_running() is False

    @pytest.mark.asyncio
    async def test_polling_detects_change(self):
        """测试轮询方式检测到配置变更"""
        callback = Mock()
        self.config_watcher.add_change_callback(callback)

        task = asyncio.create_task(self.config_watcher.watch_config_changes_async(0.02))
        try:
            self._rewrite(CONFIG.replace('check_interval: 30', 'check_interval: 120'))
            await asyncio.sleep(0.1)
        finally:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

        callback.assert_called_once()
