"""轮询调度器模块

按固定间隔触发轮询周期，并保证同一时间最多只有一个周期在执行
"""

import asyncio
from typing import Any, Dict, Optional

from .poll_cycle import CycleReport, PollCycle
from ..utils.exceptions import PollCycleError, SchedulerError
from ..utils.log_manager import get_logger

DEFAULT_POLL_INTERVAL_MS = 60000


class PollScheduler:
    """轮询调度器

    定时器和手动触发共用同一把锁：定时触发时如果已有周期在执行则跳过本次，
    手动触发则等待当前周期结束后再执行。
    """

    def __init__(self, poll_cycle: PollCycle,
                 interval_ms: int = DEFAULT_POLL_INTERVAL_MS,
                 enabled: bool = True):
        """初始化轮询调度器

        Args:
            poll_cycle: 轮询周期执行器
            interval_ms: 轮询间隔（毫秒）
            enabled: 是否启用定时轮询
        """
        if interval_ms <= 0:
            raise SchedulerError(f"轮询间隔必须是正整数: {interval_ms}")

        self.poll_cycle = poll_cycle
        self.interval_ms = interval_ms
        self.enabled = enabled
        self.is_running = False
        self.cycles_run = 0
        self.cycles_skipped = 0
        self.last_report: Optional[CycleReport] = None

        self._lock = asyncio.Lock()
        self._wakeup = asyncio.Event()
        self._loop_task: Optional[asyncio.Task] = None
        self.logger = get_logger('poll_scheduler')

    @property
    def interval_seconds(self) -> float:
        return self.interval_ms / 1000

    async def start(self):
        """启动调度器：立即执行一次轮询，然后按间隔循环"""
        if self.is_running:
            self.logger.warning("轮询调度器已经在运行")
            return

        self.is_running = True
        self.logger.info(
            f"启动轮询调度器，间隔: {self.interval_ms}ms, 定时轮询: {'启用' if self.enabled else '禁用'}")

        self._loop_task = asyncio.create_task(self._schedule_loop())

    async def stop(self):
        """停止调度器并等待调度循环退出"""
        if not self.is_running:
            return

        self.is_running = False
        self.logger.info("正在停止轮询调度器...")

        if self._loop_task and not self._loop_task.done():
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
        self._loop_task = None

        self.logger.info("轮询调度器已停止")

    async def _schedule_loop(self):
        """调度循环"""
        while self.is_running:
            if self.enabled:
                await self._tick()
            await self._sleep_interval()

    async def _sleep_interval(self):
        """等待一个轮询间隔，间隔被更新时按新间隔重新计时"""
        while True:
            self._wakeup.clear()
            try:
                await asyncio.wait_for(self._wakeup.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                return

    async def _tick(self):
        """定时触发一次轮询，已有周期在执行时跳过"""
        if self._lock.locked():
            self.cycles_skipped += 1
            self.logger.warning("上一个轮询周期仍在执行，跳过本次定时轮询")
            return

        try:
            await self.run_poll_cycle()
        except PollCycleError as e:
            self.logger.error(f"轮询周期失败: {e}")
        except Exception as e:
            self.logger.error(f"轮询周期异常: {e}", exc_info=True)

    async def run_poll_cycle(self) -> CycleReport:
        """手动触发一次轮询周期

        Returns:
            CycleReport: 周期摘要

        Raises:
            PollCycleError: 加载服务列表失败
        """
        async with self._lock:
            report = await self.poll_cycle.run_poll_cycle()
            self.cycles_run += 1
            self.last_report = report
            return report

    def update_interval(self, interval_ms: int):
        """更新轮询间隔

        Args:
            interval_ms: 新的轮询间隔（毫秒）

        Raises:
            SchedulerError: 间隔值无效
        """
        if not isinstance(interval_ms, int) or interval_ms <= 0:
            raise SchedulerError(f"轮询间隔必须是正整数: {interval_ms}")

        if interval_ms == self.interval_ms:
            return

        old_interval = self.interval_ms
        self.interval_ms = interval_ms
        self.logger.info(f"更新轮询间隔: {old_interval}ms -> {interval_ms}ms")
        self._wakeup.set()

    def set_enabled(self, enabled: bool):
        """启用或禁用定时轮询，手动触发不受影响"""
        if enabled == self.enabled:
            return

        self.enabled = enabled
        self.logger.info(f"定时轮询已{'启用' if enabled else '禁用'}")

    def get_scheduler_stats(self) -> Dict[str, Any]:
        """获取调度器统计信息

        Returns:
            调度器统计信息
        """
        return {
            'is_running': self.is_running,
            'enabled': self.enabled,
            'interval_ms': self.interval_ms,
            'cycle_in_progress': self._lock.locked(),
            'cycles_run': self.cycles_run,
            'cycles_skipped': self.cycles_skipped,
            'last_report': self.last_report.to_dict() if self.last_report else None
        }
