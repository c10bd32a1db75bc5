"""状态存储模块"""

from .base import BaseStatusStore, DEFAULT_HISTORY_LIMIT
from .factory import StatusStoreFactory, status_store_factory, register_store
from .memory_store import InMemoryStatusStore
from .postgres_store import PostgresStatusStore

__all__ = ['BaseStatusStore', 'DEFAULT_HISTORY_LIMIT', 'StatusStoreFactory',
           'status_store_factory', 'register_store', 'InMemoryStatusStore',
           'PostgresStatusStore']
