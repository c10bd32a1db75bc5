"""
日志管理器测试模块
"""

import logging
import os
import tempfile

import pytest

from devxp_health.utils.log_manager import LogLevel, LogManager, get_logger, log_manager


class TestLogManager:
    """日志管理器测试类"""

    def teardown_method(self):
        """恢复默认日志配置"""
        log_manager.configure({'log_level': 'INFO', 'log_file': None})

    def test_singleton_pattern(self):
        """测试单例模式"""
        assert LogManager() is LogManager()
        assert LogManager() is log_manager

    def test_logger_namespace(self):
        """测试日志记录器挂在统一命名空间下"""
        logger = get_logger('scheduler')

        assert logger.name == 'devxp_health.scheduler'
        assert get_logger('scheduler') is logger
        assert get_logger('devxp_health.scheduler') is logger
        assert logger.propagate is False

    def test_invalid_level(self):
        """测试无效日志级别"""
        with pytest.raises(ValueError):
            log_manager.configure({'log_level': 'VERBOSE'})

    def test_set_level_updates_existing_loggers(self):
        """测试修改级别会影响已创建的日志记录器"""
        logger = get_logger('aggregator')

        log_manager.set_level(LogLevel.DEBUG)

        assert log_manager.log_level == LogLevel.DEBUG
        assert logger.level == logging.DEBUG
        assert all(handler.level == logging.DEBUG for handler in logger.handlers)

    def test_configure_from_global_with_file(self):
        """测试按全局配置写入日志文件"""
        with tempfile.TemporaryDirectory() as temp_dir:
            log_file = os.path.join(temp_dir, 'logs', 'devxp.log')
            log_manager.configure_from_global({'log_level': 'WARNING', 'log_file': log_file})

            logger = get_logger('file_test')
            logger.info("不应写入")
            logger.warning("写入文件")
            for handler in logger.handlers:
                handler.flush()

            with open(log_file, 'r', encoding='utf-8') as f:
                content = f.read()

            log_manager.configure_from_global({'log_level': 'INFO'})

        assert "写入文件" in content
        assert "不应写入" not in content
        assert not any(isinstance(h, logging.FileHandler) for h in logger.handlers)
