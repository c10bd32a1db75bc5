"""PostgreSQL状态存储

使用 psycopg3 + psycopg_pool 异步连接池，表结构与开发者门户一致：
services（服务注册表）和 service_status（检查历史）。
"""

import uuid
from contextlib import asynccontextmanager
from typing import Dict, Any, List, Optional, Tuple

import psycopg
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool

from .base import BaseStatusStore, DEFAULT_HISTORY_LIMIT
from .factory import register_store
from ..models.health_check import Service, ServiceStatus, StatusRecord
from ..utils.exceptions import StoreError, StoreUnavailableError, ErrorCode

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS services (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    name VARCHAR(255) NOT NULL,
    type VARCHAR(100),
    url TEXT NOT NULL,
    is_critical BOOLEAN NOT NULL DEFAULT FALSE,
    metadata JSONB NOT NULL DEFAULT '{}'::jsonb,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS service_status (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    service_id UUID NOT NULL REFERENCES services(id) ON DELETE CASCADE,
    status VARCHAR(20) NOT NULL CHECK (status IN ('up', 'down', 'degraded', 'unknown')),
    response_time INTEGER,
    error_message TEXT,
    checked_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_service_status_service_checked
    ON service_status (service_id, checked_at DESC);
"""

LATEST_STATUS_SQL = """
SELECT DISTINCT ON (s.id)
    s.id, s.name, s.type, s.url, s.is_critical, s.metadata,
    ss.id AS status_id, ss.status, ss.response_time, ss.error_message, ss.checked_at
FROM services s
LEFT JOIN service_status ss ON s.id = ss.service_id
ORDER BY s.id, ss.checked_at DESC NULLS LAST
"""


def mask_conninfo(conninfo: str) -> str:
    """去掉连接串中的口令，用于日志"""
    if "@" in conninfo:
        return conninfo.split("@")[-1]
    if "password=" in conninfo:
        return conninfo.split("password=")[0] + "password=***"
    return conninfo


def is_uuid(value: str) -> bool:
    """services.id 是UUID列，非UUID格式的ID不可能存在"""
    try:
        uuid.UUID(str(value))
    except ValueError:
        return False
    return True


def row_to_service(row: Dict[str, Any]) -> Service:
    return Service(
        id=str(row['id']),
        name=row['name'],
        type=row.get('type'),
        url=row['url'],
        is_critical=bool(row.get('is_critical')),
        metadata=dict(row.get('metadata') or {})
    )


def row_to_record(row: Dict[str, Any], id_column: str = 'id') -> StatusRecord:
    return StatusRecord(
        id=str(row[id_column]),
        service_id=str(row['service_id']),
        status=ServiceStatus(row['status']),
        response_time_ms=row.get('response_time'),
        error_message=row.get('error_message'),
        checked_at=row['checked_at']
    )


@register_store('postgres')
class PostgresStatusStore(BaseStatusStore):
    """PostgreSQL状态存储"""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        """
        初始化PostgreSQL状态存储

        Args:
            config: 存储配置，支持 dsn、min_size、max_size、create_schema
        """
        super().__init__(config)
        self.dsn: str = self.config.get('dsn') or ''
        self.min_size = self.config.get('min_size', 2)
        self.max_size = self.config.get('max_size', 10)
        self.create_schema = self.config.get('create_schema', False)
        self.pool: Optional[AsyncConnectionPool] = None

    async def open(self):
        """创建连接池，按配置建表"""
        if self.pool is not None:
            self.logger.warning("连接池已经初始化")
            return

        if not self.dsn:
            raise StoreUnavailableError("未配置数据库连接串 (store.dsn 或 DATABASE_URL)",
                                        operation='open')

        self.logger.info(f"初始化数据库连接池: {mask_conninfo(self.dsn)}")
        self.pool = AsyncConnectionPool(
            conninfo=self.dsn,
            min_size=self.min_size,
            max_size=self.max_size,
            open=False,
        )
        await self.pool.open()
        self.logger.info(f"数据库连接池已打开 (min={self.min_size}, max={self.max_size})")

        if self.create_schema:
            await self.ensure_schema()

    async def close(self):
        if self.pool is not None:
            await self.pool.close()
            self.pool = None
            self.logger.info("数据库连接池已关闭")

    @asynccontextmanager
    async def _connection(self, operation: str):
        """从连接池获取连接，并把驱动异常转换为存储异常"""
        if self.pool is None:
            raise StoreUnavailableError("数据库连接池未初始化", operation=operation)

        try:
            async with self.pool.connection() as conn:
                conn.row_factory = dict_row
                yield conn
        except psycopg.IntegrityError as e:
            raise StoreError(f"数据库写入被拒绝: {e}", ErrorCode.STORE_WRITE_ERROR,
                             operation=operation, cause=e) from e
        except (psycopg.Error, OSError) as e:
            raise StoreUnavailableError(f"数据库不可用: {e}", operation=operation,
                                        cause=e) from e

    async def ensure_schema(self):
        """创建 services 和 service_status 表"""
        async with self._connection('ensure_schema') as conn:
            await conn.execute(SCHEMA_SQL)
        self.logger.info("数据库表结构已就绪")

    async def ping(self) -> None:
        async with self._connection('ping') as conn:
            await conn.execute("SELECT 1")

    async def list_services(self) -> List[Service]:
        async with self._connection('list_services') as conn:
            cursor = await conn.execute("SELECT * FROM services ORDER BY name")
            rows = await cursor.fetchall()
        return [row_to_service(row) for row in rows]

    async def get_service(self, service_id: str) -> Optional[Service]:
        if not is_uuid(service_id):
            return None

        async with self._connection('get_service') as conn:
            cursor = await conn.execute(
                "SELECT * FROM services WHERE id = %s", (service_id,))
            row = await cursor.fetchone()
        return row_to_service(row) if row else None

    async def append_status(self, record: StatusRecord) -> None:
        async with self._connection('append_status') as conn:
            await conn.execute(
                """
                INSERT INTO service_status
                    (id, service_id, status, response_time, error_message, checked_at)
                VALUES
                    (%(id)s, %(service_id)s, %(status)s, %(response_time)s,
                     %(error_message)s, %(checked_at)s)
                """,
                {
                    'id': record.id,
                    'service_id': record.service_id,
                    'status': record.status.value,
                    'response_time': record.response_time_ms,
                    'error_message': record.error_message,
                    'checked_at': record.checked_at,
                },
            )

    async def latest_status_per_service(self) -> List[Tuple[Service, Optional[StatusRecord]]]:
        async with self._connection('latest_status_per_service') as conn:
            cursor = await conn.execute(LATEST_STATUS_SQL)
            rows = await cursor.fetchall()

        latest = []
        for row in rows:
            service = row_to_service(row)
            record = None
            if row.get('status_id') is not None:
                record = row_to_record({**row, 'service_id': row['id']}, 'status_id')
            latest.append((service, record))

        latest.sort(key=lambda item: item[0].name)
        return latest

    async def history_for(self, service_id: str,
                          limit: int = DEFAULT_HISTORY_LIMIT) -> List[StatusRecord]:
        if not is_uuid(service_id):
            return []

        async with self._connection('history_for') as conn:
            cursor = await conn.execute(
                """
                SELECT * FROM service_status
                WHERE service_id = %s
                ORDER BY checked_at DESC
                LIMIT %s
                """,
                (service_id, limit),
            )
            rows = await cursor.fetchall()
        return [row_to_record(row) for row in rows]
