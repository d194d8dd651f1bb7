"""测试轮询调度器"""

import asyncio
import pytest
from unittest.mock import Mock, AsyncMock

from not_today.models.monitoring import utc_now
from not_today.services.poll_cycle import CycleReport
from not_today.services.poll_scheduler import PollScheduler
from not_today.utils.exceptions import PollCycleError, SchedulerError


def make_poll_cycle(delay=0.0):
    async def run_poll_cycle():
        if delay:
            await asyncio.sleep(delay)
        return CycleReport(started_at=utc_now(), finished_at=utc_now())

    poll_cycle = Mock()
    poll_cycle.run_poll_cycle = AsyncMock(side_effect=run_poll_cycle)
    return poll_cycle


class TestPollScheduler:
    """测试PollScheduler类"""

    def test_invalid_interval(self):
        """测试无效的轮询间隔"""
        with pytest.raises(SchedulerError):
            PollScheduler(make_poll_cycle(), interval_ms=0)

    @pytest.mark.asyncio
    async def test_manual_trigger(self):
        """测试手动触发轮询"""
        scheduler = PollScheduler(make_poll_cycle())
        scheduler.logger = Mock()

        report = await scheduler.run_poll_cycle()

        assert isinstance(report, CycleReport)
        assert scheduler.cycles_run == 1
        assert scheduler.last_report is report

    @pytest.mark.asyncio
    async def test_manual_trigger_propagates_load_failure(self):
        """测试手动触发时加载失败抛出异常"""
        poll_cycle = Mock()
        poll_cycle.run_poll_cycle = AsyncMock(side_effect=PollCycleError('load failed'))
        scheduler = PollScheduler(poll_cycle)

        with pytest.raises(PollCycleError):
            await scheduler.run_poll_cycle()

        assert scheduler.cycles_run == 0

    @pytest.mark.asyncio
    async def test_start_runs_initial_cycle_then_interval(self):
        """测试启动后立即执行一次轮询并按间隔继续"""
        poll_cycle = make_poll_cycle()
        scheduler = PollScheduler(poll_cycle, interval_ms=20)
        scheduler.logger = Mock()

        await scheduler.start()
        await asyncio.sleep(0.005)
        assert poll_cycle.run_poll_cycle.await_count == 1

        await asyncio.sleep(0.1)
        await scheduler.stop()

        assert poll_cycle.run_poll_cycle.await_count >= 3
        assert scheduler.is_running is False

    @pytest.mark.asyncio
    async def test_tick_skipped_while_cycle_running(self):
        """测试定时触发遇到正在执行的周期时跳过"""
        poll_cycle = make_poll_cycle(delay=0.05)
        scheduler = PollScheduler(poll_cycle)
        scheduler.logger = Mock()

        manual = asyncio.create_task(scheduler.run_poll_cycle())
        await asyncio.sleep(0.01)
        await scheduler._tick()
        await manual

        assert poll_cycle.run_poll_cycle.await_count == 1
        assert scheduler.cycles_skipped == 1
        scheduler.logger.warning.assert_called_once()

    @pytest.mark.asyncio
    async def test_manual_trigger_waits_for_running_cycle(self):
        """测试手动触发等待正在执行的周期结束"""
        active = 0
        peak = 0

        async def run_poll_cycle():
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.02)
            active -= 1
            return CycleReport(started_at=utc_now(), finished_at=utc_now())

        poll_cycle = Mock()
        poll_cycle.run_poll_cycle = AsyncMock(side_effect=run_poll_cycle)
        scheduler = PollScheduler(poll_cycle)

        await asyncio.gather(scheduler.run_poll_cycle(), scheduler.run_poll_cycle())

        assert poll_cycle.run_poll_cycle.await_count == 2
        assert peak == 1
        assert scheduler.cycles_run == 2

    @pytest.mark.asyncio
    async def test_loop_survives_cycle_failure(self):
        """测试周期失败后调度循环继续运行"""
        poll_cycle = Mock()
        poll_cycle.run_poll_cycle = AsyncMock(side_effect=PollCycleError('load failed'))
        scheduler = PollScheduler(poll_cycle, interval_ms=10)
        scheduler.logger = Mock()

        await scheduler.start()
        await asyncio.sleep(0.05)
        await scheduler.stop()

        assert poll_cycle.run_poll_cycle.await_count >= 2
        scheduler.logger.error.assert_called()

    @pytest.mark.asyncio
    async def test_disabled_polling_skips_timer(self):
        """测试禁用定时轮询后不再触发，手动触发仍可用"""
        poll_cycle = make_poll_cycle()
        scheduler = PollScheduler(poll_cycle, interval_ms=10, enabled=False)
        scheduler.logger = Mock()

        await scheduler.start()
        await asyncio.sleep(0.05)
        assert poll_cycle.run_poll_cycle.await_count == 0

        await scheduler.run_poll_cycle()
        await scheduler.stop()
        assert poll_cycle.run_poll_cycle.await_count == 1

    def test_update_interval(self):
        """测试更新轮询间隔"""
        scheduler = PollScheduler(make_poll_cycle())
        scheduler.logger = Mock()

        scheduler.update_interval(5000)
        assert scheduler.interval_ms == 5000

        with pytest.raises(SchedulerError):
            scheduler.update_interval(-1)

    def test_scheduler_stats(self):
        """测试调度器统计信息"""
        scheduler = PollScheduler(make_poll_cycle(), interval_ms=30000)

        stats = scheduler.get_scheduler_stats()

        assert stats['is_running'] is False
        assert stats['interval_ms'] == 30000
        assert stats['cycles_run'] == 0
        assert stats['cycles_skipped'] == 0
        assert stats['last_report'] is None
