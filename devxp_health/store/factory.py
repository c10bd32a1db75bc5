"""状态存储工厂"""

from typing import Dict, Type, Any

from .base import BaseStatusStore
from ..utils.exceptions import ConfigError


class StatusStoreFactory:
    """状态存储工厂类，按配置中的 type 创建存储实例"""

    def __init__(self):
        """初始化工厂"""
        self._stores: Dict[str, Type[BaseStatusStore]] = {}

    def register_store(self, store_type: str, store_class: Type[BaseStatusStore]):
        """
        注册状态存储类

        Args:
            store_type: 存储类型名称
            store_class: 状态存储类

        Raises:
            ConfigError: 注册失败
        """
        if not issubclass(store_class, BaseStatusStore):
            raise ConfigError(f"存储类 {store_class.__name__} 必须继承自 BaseStatusStore")

        if store_type in self._stores:
            raise ConfigError(f"存储类型 '{store_type}' 已经注册")

        self._stores[store_type] = store_class

    def create_store(self, store_config: Dict[str, Any]) -> BaseStatusStore:
        """
        创建状态存储实例

        Args:
            store_config: 存储配置，type 缺省为 memory

        Returns:
            BaseStatusStore: 状态存储实例

        Raises:
            ConfigError: 类型不支持
        """
        store_type = store_config.get('type', 'memory')
        if store_type not in self._stores:
            raise ConfigError(
                f"不支持的存储类型: '{store_type}'，支持的类型: {self.get_supported_types()}")

        return self._stores[store_type](store_config)

    def get_supported_types(self) -> list:
        """
        获取支持的存储类型列表

        Returns:
            list: 存储类型列表
        """
        return list(self._stores.keys())


# 全局工厂实例
status_store_factory = StatusStoreFactory()


def register_store(store_type: str):
    """
    装饰器：注册状态存储类

    Args:
        store_type: 存储类型名称

    Returns:
        装饰器函数
    """
    def decorator(store_class: Type[BaseStatusStore]):
        status_store_factory.register_store(store_type, store_class)
        return store_class

    return decorator
