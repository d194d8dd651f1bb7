"""服务与检查结果存储

保存服务列表和检查结果历史，可选地持久化到状态目录：
services.json 保存服务列表，check_results.jsonl 逐行追加检查结果。
"""

import asyncio
import json
import os
import threading
import uuid
from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict, List, Optional, Any, Iterable, Tuple

from .config_manager import ServiceDefinition
from .stores import ServiceStore
from ..models.monitoring import (CheckResult, CheckStatus, Service, ServiceSnapshot,
                                 utc_now)
from ..utils.exceptions import ErrorCode, StoreError
from ..utils.log_manager import get_logger

SERVICES_FILE = 'services.json'
RESULTS_FILE = 'check_results.jsonl'


class StateStore(ServiceStore):
    """基于内存的服务存储，可选文件持久化"""

    def __init__(self, state_dir: Optional[str] = None):
        """初始化存储

        Args:
            state_dir: 状态目录，如果为None则不持久化
        """
        self.services: Dict[str, Service] = {}
        self.results: Dict[str, List[CheckResult]] = {}
        self.state_dir = Path(state_dir) if state_dir else None
        self._write_lock = threading.Lock()
        self.logger = get_logger('state_store')

        if self.state_dir:
            self._load_state()

    @property
    def services_file(self) -> Optional[Path]:
        return self.state_dir / SERVICES_FILE if self.state_dir else None

    @property
    def results_file(self) -> Optional[Path]:
        return self.state_dir / RESULTS_FILE if self.state_dir else None

    def sync_services(self, definitions: Iterable[ServiceDefinition]) -> Tuple[int, int]:
        """按URL同步配置文件中的服务

        已存在的服务更新名称、期望版本、环境和依赖，不存在的服务以新ID创建。

        Args:
            definitions: 配置中的服务定义

        Returns:
            (新建数量, 更新数量)
        """
        by_url = {service.url: service for service in self.services.values()}
        created = updated = 0

        for definition in definitions:
            existing = by_url.get(definition.url)
            if existing:
                service = Service(
                    id=existing.id,
                    name=definition.name,
                    url=existing.url,
                    expected_version=definition.expected_version,
                    environment=definition.environment,
                    depends_on=tuple(definition.depends_on)
                )
                if service != existing:
                    self.services[existing.id] = service
                    updated += 1
                    self.logger.info(f"更新服务: {definition.name}")
            else:
                service = Service(
                    id=uuid.uuid4().hex,
                    name=definition.name,
                    url=definition.url,
                    expected_version=definition.expected_version,
                    environment=definition.environment,
                    depends_on=tuple(definition.depends_on)
                )
                self.services[service.id] = service
                self.results.setdefault(service.id, [])
                by_url[service.url] = service
                created += 1
                self.logger.info(f"新建服务: {definition.name}")

        if created or updated:
            self._save_services()

        self.logger.info(f"服务同步完成: 新建 {created} 个, 更新 {updated} 个")
        return created, updated

    def get_service(self, service_id: str) -> Optional[Service]:
        return self.services.get(service_id)

    def get_services(self) -> List[Service]:
        return list(self.services.values())

    async def list_services_with_last_check(self) -> List[ServiceSnapshot]:
        """加载所有服务及其最近一次检查结果

        Returns:
            服务快照列表
        """
        snapshots = []
        for service in self.services.values():
            latest = self.latest_result(service.id)
            snapshots.append(ServiceSnapshot(
                service=service,
                last_check=latest.to_last_check() if latest else None
            ))
        return snapshots

    async def create_check_result(self, result: CheckResult) -> None:
        """追加一条检查结果

        文件写入在线程池中执行，避免阻塞轮询周期中的其他检查。

        Args:
            result: 检查结果

        Raises:
            StoreError: 服务不存在或写入失败
        """
        if result.service_id not in self.services:
            raise StoreError(f"服务不存在: {result.service_id}",
                             service_id=result.service_id)

        if self.results_file:
            try:
                await asyncio.get_running_loop().run_in_executor(
                    None, self._append_result, result)
            except OSError as e:
                raise StoreError(f"写入检查结果失败: {e}",
                                 ErrorCode.STORE_PERSISTENCE_ERROR,
                                 service_id=result.service_id, cause=e)

        self.results.setdefault(result.service_id, []).append(result)

    def _append_result(self, result: CheckResult):
        """追加一行到 check_results.jsonl"""
        line = json.dumps(result.to_dict(), ensure_ascii=False) + '\n'
        with self._write_lock:
            self.results_file.parent.mkdir(parents=True, exist_ok=True)
            with open(self.results_file, 'a', encoding='utf-8') as f:
                f.write(line)

    def latest_result(self, service_id: str) -> Optional[CheckResult]:
        """获取服务最近一次检查结果

        Args:
            service_id: 服务ID

        Returns:
            时间戳最新的检查结果，没有历史时返回None
        """
        history = self.results.get(service_id)
        if not history:
            return None
        # 时间戳相同时取最后追加的结果
        return max(reversed(history), key=lambda r: r.timestamp)

    def get_history(self, service_id: Optional[str] = None,
                    since: Optional[datetime] = None,
                    limit: Optional[int] = None) -> List[CheckResult]:
        """获取检查结果历史记录

        Args:
            service_id: 服务ID，如果为None则获取所有服务
            since: 获取此时间之后的记录，如果为None则获取所有
            limit: 限制返回记录数量

        Returns:
            按时间倒序排列的历史记录
        """
        if service_id:
            history = list(self.results.get(service_id, []))
        else:
            history = [r for results in self.results.values() for r in results]

        if since:
            history = [r for r in history if r.timestamp >= since]

        history.sort(key=lambda r: r.timestamp, reverse=True)

        if limit:
            history = history[:limit]

        return history

    def get_service_stats(self, service_id: str,
                          now: Optional[datetime] = None) -> Dict[str, Any]:
        """获取服务最近24小时的统计信息

        Args:
            service_id: 服务ID
            now: 统计截止时间，默认当前时间

        Returns:
            服务统计信息字典，服务不存在时返回空字典
        """
        service = self.services.get(service_id)
        if not service:
            return {}

        now = now or utc_now()
        recent = self.get_history(service_id, since=now - timedelta(hours=24))
        latest = self.latest_result(service_id)
        detected_version = latest.detected_version if latest else None

        total_checks = len(recent)
        up_checks = sum(1 for r in recent if r.status == CheckStatus.UP)
        latencies = [r.latency or 0 for r in recent]

        return {
            'service_id': service.id,
            'name': service.name,
            'url': service.url,
            'environment': service.environment,
            'expected_version': service.expected_version,
            'detected_version': detected_version,
            # 两个版本都已知且不同时才算版本漂移
            'version_mismatch': bool(service.expected_version and detected_version
                                     and service.expected_version != detected_version),
            'depends_on': list(service.depends_on),
            'latest_check': latest,
            'uptime_24h': up_checks / total_checks * 100 if total_checks else 0.0,
            'avg_latency_24h': sum(latencies) / total_checks if total_checks else None,
            'total_checks_24h': total_checks,
            'history': recent[:50]
        }

    def _save_services(self):
        """保存服务列表到文件"""
        if not self.services_file:
            return

        state_data = {
            'services': [
                {
                    'id': s.id,
                    'name': s.name,
                    'url': s.url,
                    'expected_version': s.expected_version,
                    'environment': s.environment,
                    'depends_on': list(s.depends_on)
                }
                for s in self.services.values()
            ],
            'last_updated': utc_now().isoformat()
        }

        try:
            self.services_file.parent.mkdir(parents=True, exist_ok=True)
            tmp_file = self.services_file.with_suffix('.json.tmp')
            with open(tmp_file, 'w', encoding='utf-8') as f:
                json.dump(state_data, f, ensure_ascii=False, indent=2)
            os.replace(tmp_file, self.services_file)
        except OSError as e:
            raise StoreError(f"保存服务列表失败: {e}",
                             ErrorCode.STORE_PERSISTENCE_ERROR, cause=e)

    def _load_state(self):
        """从状态目录加载服务和检查结果

        Raises:
            StoreError: 状态文件无法读取
        """
        try:
            if self.services_file.exists():
                with open(self.services_file, 'r', encoding='utf-8') as f:
                    state_data = json.load(f)
                for item in state_data.get('services', []):
                    service = Service(
                        id=item['id'],
                        name=item['name'],
                        url=item['url'],
                        expected_version=item.get('expected_version'),
                        environment=item.get('environment'),
                        depends_on=tuple(item.get('depends_on') or ())
                    )
                    self.services[service.id] = service
                    self.results.setdefault(service.id, [])

            loaded = 0
            if self.results_file.exists():
                with open(self.results_file, 'r', encoding='utf-8') as f:
                    for line_no, line in enumerate(f, 1):
                        line = line.strip()
                        if not line:
                            continue
                        try:
                            result = CheckResult.from_dict(json.loads(line))
                        except (ValueError, KeyError) as e:
                            self.logger.warning(f"跳过损坏的检查结果记录 (第 {line_no} 行): {e}")
                            continue
                        # 服务删除时其结果一并丢弃
                        if result.service_id in self.services:
                            self.results[result.service_id].append(result)
                            loaded += 1

        except (OSError, ValueError, KeyError) as e:
            self.logger.error(f"加载状态失败: {e}")
            raise StoreError(f"加载状态失败: {e}", ErrorCode.STORE_LOAD_ERROR, cause=e)

        self.logger.info(
            f"从 {self.state_dir} 加载了 {len(self.services)} 个服务和 {loaded} 条检查结果")
