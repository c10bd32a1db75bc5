"""内存状态存储

服务注册表来自配置文件，检查历史保存在内存中，可选持久化到JSON文件
"""

import asyncio
import bisect
import json
import os
from pathlib import Path
from typing import Dict, Any, List, Optional, Tuple

from .base import BaseStatusStore, DEFAULT_HISTORY_LIMIT
from .factory import register_store
from ..models.health_check import Service, StatusRecord, utcnow
from ..utils.exceptions import StoreError, ErrorCode


def _checked_at(record: StatusRecord):
    return record.checked_at


@register_store('memory')
class InMemoryStatusStore(BaseStatusStore):
    """内存状态存储

    每个服务的历史按 checked_at 升序保存，读取时倒序返回
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        """
        初始化内存状态存储

        Args:
            config: 存储配置，支持 services（服务定义列表）、
                state_file（持久化文件路径，为空则不持久化）
        """
        super().__init__(config)
        self.services: Dict[str, Service] = {}
        self.history: Dict[str, List[StatusRecord]] = {}
        self.persistence_file: Optional[str] = self.config.get('state_file')
        self._dirty = False
        self._save_task: Optional[asyncio.Task] = None

        self.replace_services(
            [Service.from_dict(item) for item in self.config.get('services', [])]
        )

    async def open(self):
        """加载持久化的历史记录"""
        if self.persistence_file:
            self._load_state()

    async def ping(self) -> None:
        return None

    def replace_services(self, services: List[Service]):
        """
        替换服务注册表，已有的检查历史保留

        Args:
            services: 新的服务列表
        """
        old_ids = set(self.services)
        self.services = {service.id: service for service in services}

        added = set(self.services) - old_ids
        removed = old_ids - set(self.services)
        if added:
            self.logger.info(f"新增服务: {', '.join(sorted(added))}")
        if removed:
            self.logger.info(f"移除服务: {', '.join(sorted(removed))}")

    async def list_services(self) -> List[Service]:
        return sorted(self.services.values(), key=lambda s: s.name)

    async def get_service(self, service_id: str) -> Optional[Service]:
        return self.services.get(service_id)

    async def append_status(self, record: StatusRecord) -> None:
        if record.service_id not in self.services:
            raise StoreError(f"无法写入未注册服务的状态: {record.service_id}",
                             ErrorCode.STORE_WRITE_ERROR, operation='append_status')

        records = self.history.setdefault(record.service_id, [])
        if records and record.checked_at < records[-1].checked_at:
            bisect.insort(records, record, key=_checked_at)
        else:
            records.append(record)

        if self.persistence_file:
            self._schedule_save()

    async def latest_status_per_service(self) -> List[Tuple[Service, Optional[StatusRecord]]]:
        latest = []
        for service in await self.list_services():
            records = self.history.get(service.id)
            latest.append((service, records[-1] if records else None))
        return latest

    async def history_for(self, service_id: str,
                          limit: int = DEFAULT_HISTORY_LIMIT) -> List[StatusRecord]:
        records = self.history.get(service_id, [])
        return list(reversed(records[-limit:])) if limit > 0 else []

    def _schedule_save(self):
        """标记需要持久化，由后台任务合并写入"""
        self._dirty = True
        if self._save_task is None or self._save_task.done():
            self._save_task = asyncio.create_task(self._flush_state())

    async def _flush_state(self):
        """在线程中写文件，写入期间新增的记录在下一轮写入"""
        while self._dirty:
            self._dirty = False
            history = {service_id: list(records) for service_id, records in self.history.items()}
            await asyncio.to_thread(self._write_state, history)

    async def close(self):
        """等待未完成的持久化"""
        if self._save_task is not None:
            await self._save_task
            self._save_task = None

    def _write_state(self, history: Dict[str, List[StatusRecord]]):
        """保存历史到文件"""
        try:
            path = Path(self.persistence_file)
            path.parent.mkdir(parents=True, exist_ok=True)

            state_data = {
                'last_updated': utcnow().isoformat(),
                'history': {
                    service_id: [record.to_dict() for record in records]
                    for service_id, records in history.items()
                }
            }

            temp_path = path.with_name(path.name + '.tmp')
            with open(temp_path, 'w', encoding='utf-8') as f:
                json.dump(state_data, f, ensure_ascii=False)
            os.replace(temp_path, path)

        except OSError as e:
            self.logger.error(f"保存状态失败: {e}")

    def _load_state(self):
        """从文件加载历史"""
        if not os.path.exists(self.persistence_file):
            return

        try:
            with open(self.persistence_file, 'r', encoding='utf-8') as f:
                state_data = json.load(f)

            self.history = {}
            for service_id, records in state_data.get('history', {}).items():
                loaded = [StatusRecord.from_dict(item) for item in records]
                loaded.sort(key=_checked_at)
                self.history[service_id] = loaded

            total = sum(len(records) for records in self.history.values())
            self.logger.info(f"从 {self.persistence_file} 加载了 {total} 条状态记录")

        except (OSError, ValueError, KeyError) as e:
            self.logger.error(f"加载状态失败: {e}")
