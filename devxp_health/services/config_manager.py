"""配置管理器"""

import copy
import os
from typing import Dict, Any, Optional, List, Mapping

import yaml

from ..checkers.base import DEFAULT_PROBE_TIMEOUT
from ..utils.config_validator import ConfigValidator
from ..utils.exceptions import ConfigError, ErrorCode
from ..utils.log_manager import get_logger

DEFAULT_CONFIG: Dict[str, Any] = {
    'global': {
        'check_interval': 300,
        'probe_timeout': DEFAULT_PROBE_TIMEOUT,
        'probe_headers': {},
        'periodic_checks': True,
        'run_on_start': False,
        'environment': 'development',
        'log_level': 'INFO',
    },
    'server': {
        'host': '0.0.0.0',
        'port': 4000,
        'api_prefix': '/api',
        'ws_path': '/ws',
        'ws_heartbeat': 30.0,
        'ws_send_timeout': 5.0,
    },
    'store': {
        'type': 'memory',
        'connect_retries': 5,
        'connect_retry_delay': 1.0,
    },
    'services': [],
}


def _merge(base: Dict[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    """两层深度合并：节内按键覆盖，services 列表整体替换"""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key].update(value)
        else:
            merged[key] = value
    return merged


class ConfigManager:
    """配置管理器，负责YAML配置文件的加载、环境变量覆盖和验证"""

    def __init__(self, config_path: Optional[str] = None,
                 environ: Optional[Mapping[str, str]] = None):
        """
        初始化配置管理器

        Args:
            config_path: 配置文件路径，为None时只使用默认值和环境变量
            environ: 环境变量映射，默认 os.environ
        """
        self.config_path = config_path
        self.environ = environ if environ is not None else os.environ
        self.config: Dict[str, Any] = {}
        self.last_modified: Optional[float] = None
        self.logger = get_logger('config_manager')

    def load_config(self) -> Dict[str, Any]:
        """
        加载配置：默认值 <- YAML文件 <- 环境变量

        Returns:
            Dict[str, Any]: 配置字典

        Raises:
            ConfigError: 配置加载或验证失败
        """
        file_config: Dict[str, Any] = {}
        if self.config_path:
            file_config = self._read_file()

        config = _merge(DEFAULT_CONFIG, file_config)
        self._apply_env_overrides(config)
        self._validate_config(config)

        self.logger.info(
            f"配置加载成功: 存储={config['store']['type']}, "
            f"服务数={len(config['services'])}, "
            f"检查间隔={config['global']['check_interval']}秒"
        )

        self.config = config
        if self.config_path:
            self.last_modified = os.path.getmtime(self.config_path)
        return self.config

    def _read_file(self) -> Dict[str, Any]:
        """读取YAML配置文件"""
        self.logger.info(f"开始加载配置文件: {self.config_path}")
        try:
            with open(self.config_path, 'r', encoding='utf-8') as file:
                data = yaml.safe_load(file)
        except FileNotFoundError:
            raise ConfigError(f"配置文件不存在: {self.config_path}",
                              ErrorCode.CONFIG_FILE_NOT_FOUND,
                              config_path=self.config_path)
        except PermissionError:
            raise ConfigError(f"没有权限读取配置文件: {self.config_path}",
                              ErrorCode.CONFIG_FILE_NOT_FOUND,
                              config_path=self.config_path)
        except yaml.YAMLError as e:
            raise ConfigError(f"YAML格式错误: {e}", ErrorCode.CONFIG_PARSE_ERROR,
                              config_path=self.config_path, cause=e)

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigError("配置文件根节点必须是字典类型", config_path=self.config_path)
        return data

    def _apply_env_overrides(self, config: Dict[str, Any]) -> None:
        """
        应用环境变量覆盖

        - DEVXP_ENV: 运行环境，test 时关闭定时检查
        - HEALTH_CHECK_INTERVAL: 检查间隔（秒）
        - HEALTH_CHECK_TIMEOUT: 探测超时（秒）
        - LOG_LEVEL / LOG_FILE: 日志配置
        - PORT: HTTP端口
        - DATABASE_URL: PostgreSQL连接串
        """
        global_config = config['global']
        env = self.environ

        if env.get('DEVXP_ENV'):
            global_config['environment'] = env['DEVXP_ENV']
        if env.get('HEALTH_CHECK_INTERVAL'):
            global_config['check_interval'] = self._parse_number(
                'HEALTH_CHECK_INTERVAL', env['HEALTH_CHECK_INTERVAL'])
        if env.get('HEALTH_CHECK_TIMEOUT'):
            global_config['probe_timeout'] = self._parse_number(
                'HEALTH_CHECK_TIMEOUT', env['HEALTH_CHECK_TIMEOUT'])
        if env.get('LOG_LEVEL'):
            global_config['log_level'] = env['LOG_LEVEL'].upper()
        if env.get('LOG_FILE'):
            global_config['log_file'] = env['LOG_FILE']
        if env.get('PORT'):
            config['server']['port'] = int(self._parse_number('PORT', env['PORT']))
        if env.get('DATABASE_URL'):
            config['store']['dsn'] = env['DATABASE_URL']

    @staticmethod
    def _parse_number(name: str, value: str) -> float:
        try:
            number = float(value)
        except ValueError:
            raise ConfigError(f"环境变量 {name} 必须是数字: {value}")
        return int(number) if number.is_integer() else number

    def _validate_config(self, config: Dict[str, Any]) -> None:
        """
        验证配置内容

        Raises:
            ConfigError: 配置验证失败
        """
        ConfigValidator.validate_global_config(config['global'])
        ConfigValidator.validate_server_config(config['server'])
        ConfigValidator.validate_store_config(config['store'])
        ConfigValidator.validate_services_config(config['services'])

    def get_global_config(self) -> Dict[str, Any]:
        return self.config.get('global', {})

    def get_server_config(self) -> Dict[str, Any]:
        return self.config.get('server', {})

    def get_store_config(self) -> Dict[str, Any]:
        """存储配置，memory 类型附带服务定义作为初始注册表"""
        store_config = dict(self.config.get('store', {}))
        store_config.setdefault('services', self.get_services_config())
        return store_config

    def get_services_config(self) -> List[Dict[str, Any]]:
        return self.config.get('services', [])

    def is_test_mode(self) -> bool:
        return self.get_global_config().get('environment') == 'test'

    def periodic_checks_enabled(self) -> bool:
        """测试模式下定时检查总是关闭"""
        if self.is_test_mode():
            return False
        return bool(self.get_global_config().get('periodic_checks', True))

    def is_config_changed(self) -> bool:
        """
        检查配置文件是否已修改

        Returns:
            bool: 配置文件是否已修改
        """
        if not self.config_path:
            return False
        try:
            current_modified = os.path.getmtime(self.config_path)
        except OSError:
            return False
        return self.last_modified is None or current_modified > self.last_modified

    def reload_config(self) -> Dict[str, Any]:
        """
        重新加载配置文件

        Returns:
            Dict[str, Any]: 新的配置字典

        Raises:
            ConfigError: 配置重新加载失败，旧配置保持不变
        """
        self.logger.info("重新加载配置文件")
        old_config = self.config
        new_config = self.load_config()
        self._log_config_changes(old_config, new_config)
        return new_config

    def _log_config_changes(self, old_config: Dict[str, Any],
                            new_config: Dict[str, Any]) -> None:
        """记录配置变更"""
        old_ids = {s['id'] for s in old_config.get('services', [])}
        new_ids = {s['id'] for s in new_config.get('services', [])}

        if new_ids - old_ids:
            self.logger.info(f"新增服务: {', '.join(sorted(map(str, new_ids - old_ids)))}")
        if old_ids - new_ids:
            self.logger.info(f"删除服务: {', '.join(sorted(map(str, old_ids - new_ids)))}")

        for section in ('global', 'server', 'store'):
            if old_config.get(section) != new_config.get(section):
                self.logger.info(f"{section} 配置已修改")
