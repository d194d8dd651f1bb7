"""轮询周期

一个周期依次执行：加载服务快照、并发检查所有服务、逐个服务持久化结果并判断状态变化、
必要时分发通知。只有加载阶段的失败会中止周期，其余失败都限定在单个服务内。
"""

import asyncio
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from .stores import ServiceStore
from .transition import evaluate_transition
from ..checkers.http_checker import HttpChecker
from ..models.monitoring import (CheckResult, CheckStatus, Service, ServiceSnapshot,
                                 StatusEvent, utc_now)
from ..notifications.dispatcher import NotificationDispatcher
from ..utils.exceptions import PollCycleError
from ..utils.log_manager import get_logger

DEFAULT_MAX_CONCURRENT_CHECKS = 10


@dataclass
class CycleReport:
    """一次轮询周期的执行摘要"""
    started_at: datetime
    finished_at: Optional[datetime] = None
    services_checked: int = 0
    results_recorded: int = 0
    persist_failures: int = 0
    status_counts: Dict[str, int] = field(default_factory=dict)
    events: List[Tuple[str, StatusEvent]] = field(default_factory=list)  # (服务名, 事件)

    @property
    def duration(self) -> float:
        """周期耗时（秒）"""
        if self.finished_at is None:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()

    def to_dict(self):
        return {
            'started_at': self.started_at.isoformat(),
            'finished_at': self.finished_at.isoformat() if self.finished_at else None,
            'duration': self.duration,
            'services_checked': self.services_checked,
            'results_recorded': self.results_recorded,
            'persist_failures': self.persist_failures,
            'status_counts': dict(self.status_counts),
            'events': [
                {'service': name, 'event': event.kind.value}
                for name, event in self.events
            ]
        }


class PollCycle:
    """轮询周期执行器"""

    def __init__(self, service_store: ServiceStore, checker: HttpChecker,
                 dispatcher: NotificationDispatcher,
                 max_concurrent_checks: int = DEFAULT_MAX_CONCURRENT_CHECKS):
        """
        初始化轮询周期执行器

        Args:
            service_store: 服务与检查结果存储
            checker: HTTP检查器
            dispatcher: 通知分发器
            max_concurrent_checks: 最大并发检查数量
        """
        self.service_store = service_store
        self.checker = checker
        self.dispatcher = dispatcher
        self.max_concurrent_checks = max_concurrent_checks
        self.logger = get_logger('poller')

    async def run_poll_cycle(self) -> CycleReport:
        """
        执行一次完整的轮询周期

        Returns:
            CycleReport: 周期摘要

        Raises:
            PollCycleError: 加载服务列表失败
        """
        report = CycleReport(started_at=utc_now())
        self.logger.info("开始轮询周期")

        try:
            snapshots = await self.service_store.list_services_with_last_check()
        except Exception as e:
            self.logger.error(f"加载服务列表失败: {e}")
            raise PollCycleError(f"加载服务列表失败: {e}", cause=e)

        if not snapshots:
            self.logger.info("没有需要检查的服务")
            report.finished_at = utc_now()
            return report

        self.logger.info(f"检查 {len(snapshots)} 个服务")

        semaphore = asyncio.Semaphore(self.max_concurrent_checks)
        results = await asyncio.gather(
            *(self._check_service(snapshot.service, semaphore) for snapshot in snapshots)
        )
        report.services_checked = len(results)
        report.status_counts = dict(Counter(result.status.value for result in results))

        outcomes = await asyncio.gather(
            *(self._record_and_evaluate(snapshot, result)
              for snapshot, result in zip(snapshots, results)),
            return_exceptions=True
        )

        for snapshot, outcome in zip(snapshots, outcomes):
            if isinstance(outcome, Exception):
                # 正常情况下 _record_and_evaluate 自行处理异常
                report.persist_failures += 1
                self.logger.error(f"处理服务 {snapshot.service.name} 的结果时异常: {outcome}")
                continue

            recorded, event = outcome
            if recorded:
                report.results_recorded += 1
            else:
                report.persist_failures += 1
            if event is not None:
                report.events.append((snapshot.service.name, event))

        report.finished_at = utc_now()
        self.logger.info(
            f"轮询周期完成，记录了 {report.results_recorded} 条结果 "
            f"(耗时 {report.duration:.2f}s)"
        )
        return report

    async def _check_service(self, service: Service,
                             semaphore: asyncio.Semaphore) -> CheckResult:
        """
        检查单个服务，保证返回一个结果

        Args:
            service: 服务
            semaphore: 并发控制信号量

        Returns:
            CheckResult: 检查结果
        """
        async with semaphore:
            try:
                result = await self.checker.check(service)
            except Exception as e:
                self.logger.error(f"检查服务 {service.name} 时发生异常: {e}")
                result = CheckResult(
                    service_id=service.id,
                    status=CheckStatus.ERROR,
                    error_message=str(e) or e.__class__.__name__
                )

        self.logger.debug(
            f"服务 {service.name} 检查完成: {result.status.value}, 延迟: {result.latency}ms")
        return result

    async def _record_and_evaluate(self, snapshot: ServiceSnapshot,
                                   result: CheckResult) -> Tuple[bool, Optional[StatusEvent]]:
        """
        持久化结果，判断状态变化并分发通知

        持久化失败时跳过该服务的状态判断，保持通知与已存储历史一致。

        Returns:
            (是否已持久化, 触发的事件)
        """
        service = snapshot.service

        try:
            await self.service_store.create_check_result(result)
        except Exception as e:
            self.logger.error(f"保存服务 {service.name} 的检查结果失败: {e}")
            return False, None

        event = evaluate_transition(service, snapshot.last_check, result)
        if event is None:
            return True, None

        self.logger.info(
            f"服务 {service.name} 状态变化: {event.kind.value} "
            f"({event.previous_status.value} -> {event.current_status.value})"
        )

        try:
            await self.dispatcher.dispatch(service, event)
        except Exception as e:
            self.logger.error(f"分发服务 {service.name} 的通知失败: {e}")

        return True, event
