"""状态存储基类"""

from abc import ABC, abstractmethod
from typing import Dict, Any, List, Optional, Tuple

from ..models.health_check import Service, StatusRecord, SaveResult
from ..utils.log_manager import get_logger

DEFAULT_HISTORY_LIMIT = 100
MAX_HISTORY_LIMIT = 1000


class BaseStatusStore(ABC):
    """状态存储抽象基类

    保存服务注册表和每个服务只追加的检查历史。读写失败时抛出
    StoreError，只有 save_status 例外：它把失败折算为 SaveResult。
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        """
        初始化状态存储

        Args:
            config: 存储配置
        """
        self.config = config or {}
        self.store_type = self.config.get('type') or \
            self.__class__.__name__.replace('StatusStore', '').lower()
        self.logger = get_logger(f'store.{self.store_type}')

    async def open(self):
        """建立连接或加载数据"""
        pass

    async def close(self):
        """释放存储资源"""
        pass

    @abstractmethod
    async def ping(self) -> None:
        """
        检查存储是否可达

        Raises:
            StoreUnavailableError: 存储不可达
        """
        pass

    @abstractmethod
    async def list_services(self) -> List[Service]:
        """
        获取全部服务，按名称排序

        Returns:
            List[Service]: 服务列表
        """
        pass

    @abstractmethod
    async def get_service(self, service_id: str) -> Optional[Service]:
        """
        按ID获取服务

        Args:
            service_id: 服务ID

        Returns:
            Optional[Service]: 服务，不存在时返回None
        """
        pass

    @abstractmethod
    async def append_status(self, record: StatusRecord) -> None:
        """
        追加一条状态记录

        Args:
            record: 状态记录

        Raises:
            StoreError: 写入失败，存储不可达时为 StoreUnavailableError
        """
        pass

    @abstractmethod
    async def latest_status_per_service(self) -> List[Tuple[Service, Optional[StatusRecord]]]:
        """
        获取每个服务最近一条状态记录

        Returns:
            按服务名称排序的 (服务, 最近记录) 列表，从未检查过的服务记录为None
        """
        pass

    @abstractmethod
    async def history_for(self, service_id: str,
                          limit: int = DEFAULT_HISTORY_LIMIT) -> List[StatusRecord]:
        """
        获取服务的状态历史

        Args:
            service_id: 服务ID
            limit: 最多返回的记录数

        Returns:
            List[StatusRecord]: 按检查时间倒序的记录
        """
        pass

    async def save_status(self, record: StatusRecord) -> SaveResult:
        """
        写入状态记录，失败时返回失败结果而不是抛出异常

        Args:
            record: 状态记录

        Returns:
            SaveResult: 写入结果
        """
        try:
            await self.append_status(record)
        except Exception as e:
            return SaveResult.failed(record.service_id, e)
        return SaveResult.ok(record.service_id)
