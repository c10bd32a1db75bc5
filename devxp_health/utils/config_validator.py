"""配置验证工具"""

from typing import Dict, Any, List
from urllib.parse import urlparse

from .exceptions import ConfigError

SUPPORTED_STORE_TYPES = ['memory', 'postgres']
VALID_LOG_LEVELS = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
VALID_ENVIRONMENTS = ['development', 'production', 'test']


def _is_positive_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0


class ConfigValidator:
    """配置验证器"""

    @staticmethod
    def validate_global_config(global_config: Dict[str, Any]) -> None:
        """
        验证全局配置

        Args:
            global_config: 全局配置

        Raises:
            ConfigError: 配置验证失败
        """
        if not isinstance(global_config, dict):
            raise ConfigError("全局配置必须是字典类型")

        check_interval = global_config.get('check_interval')
        if check_interval is not None and not _is_positive_number(check_interval):
            raise ConfigError("check_interval 必须是正数（秒）")

        probe_timeout = global_config.get('probe_timeout')
        if probe_timeout is not None and not _is_positive_number(probe_timeout):
            raise ConfigError("probe_timeout 必须是正数（秒）")

        probe_headers = global_config.get('probe_headers')
        if probe_headers is not None:
            if not isinstance(probe_headers, dict) or not all(
                    isinstance(k, str) and isinstance(v, str) for k, v in probe_headers.items()):
                raise ConfigError("probe_headers 必须是字符串到字符串的映射")

        for flag in ('periodic_checks', 'run_on_start'):
            value = global_config.get(flag)
            if value is not None and not isinstance(value, bool):
                raise ConfigError(f"{flag} 必须是布尔值")

        environment = global_config.get('environment')
        if environment is not None and environment not in VALID_ENVIRONMENTS:
            raise ConfigError(f"environment 必须是以下值之一: {VALID_ENVIRONMENTS}")

        log_level = global_config.get('log_level')
        if log_level is not None and str(log_level).upper() not in VALID_LOG_LEVELS:
            raise ConfigError(f"log_level 必须是以下值之一: {VALID_LOG_LEVELS}")

    @staticmethod
    def validate_server_config(server_config: Dict[str, Any]) -> None:
        """
        验证HTTP服务配置

        Args:
            server_config: 服务端配置

        Raises:
            ConfigError: 配置验证失败
        """
        if not isinstance(server_config, dict):
            raise ConfigError("server配置必须是字典类型")

        port = server_config.get('port')
        if port is not None:
            if not isinstance(port, int) or isinstance(port, bool) or not (0 < port < 65536):
                raise ConfigError("server.port 必须是 1-65535 之间的整数")

        for key in ('api_prefix', 'ws_path'):
            path = server_config.get(key)
            if path is not None and (not isinstance(path, str) or not path.startswith('/')):
                raise ConfigError(f"server.{key} 必须以 '/' 开头")

        for key in ('ws_heartbeat', 'ws_send_timeout'):
            value = server_config.get(key)
            if value is not None and not _is_positive_number(value):
                raise ConfigError(f"server.{key} 必须是正数（秒）")

    @staticmethod
    def validate_store_config(store_config: Dict[str, Any]) -> None:
        """
        验证状态存储配置

        Args:
            store_config: 存储配置

        Raises:
            ConfigError: 配置验证失败
        """
        if not isinstance(store_config, dict):
            raise ConfigError("store配置必须是字典类型")

        store_type = store_config.get('type', 'memory')
        if store_type not in SUPPORTED_STORE_TYPES:
            raise ConfigError(
                f"存储类型 '{store_type}' 不受支持。支持的类型: {SUPPORTED_STORE_TYPES}")

        for key in ('min_size', 'max_size', 'connect_retries'):
            value = store_config.get(key)
            if value is not None and (not isinstance(value, int) or value <= 0):
                raise ConfigError(f"store.{key} 必须是正整数")

        min_size = store_config.get('min_size')
        max_size = store_config.get('max_size')
        if min_size is not None and max_size is not None and min_size > max_size:
            raise ConfigError("store.min_size 不能大于 store.max_size")

    @staticmethod
    def validate_service_config(service_config: Dict[str, Any]) -> None:
        """
        验证单个服务定义

        Args:
            service_config: 服务配置

        Raises:
            ConfigError: 配置验证失败
        """
        if not isinstance(service_config, dict):
            raise ConfigError("服务配置必须是字典类型")

        for field in ('id', 'name', 'url'):
            if not service_config.get(field):
                raise ConfigError(f"服务配置缺少必需的配置项: {field}")

        service_id = service_config['id']
        parsed = urlparse(str(service_config['url']))
        if parsed.scheme not in ('http', 'https') or not parsed.netloc:
            raise ConfigError(f"服务 '{service_id}' 的URL无效: {service_config['url']}")

        is_critical = service_config.get('is_critical')
        if is_critical is not None and not isinstance(is_critical, bool):
            raise ConfigError(f"服务 '{service_id}' 的 is_critical 必须是布尔值")

        metadata = service_config.get('metadata')
        if metadata is not None and not isinstance(metadata, dict):
            raise ConfigError(f"服务 '{service_id}' 的 metadata 必须是字典类型")

    @staticmethod
    def validate_services_config(services_config: List[Dict[str, Any]]) -> None:
        """
        验证服务列表，服务ID不能重复

        Args:
            services_config: 服务配置列表

        Raises:
            ConfigError: 配置验证失败
        """
        if not isinstance(services_config, list):
            raise ConfigError("services配置必须是列表类型")

        seen = set()
        for service_config in services_config:
            ConfigValidator.validate_service_config(service_config)
            service_id = service_config['id']
            if service_id in seen:
                raise ConfigError(f"服务ID重复: {service_id}")
            seen.add(service_id)
