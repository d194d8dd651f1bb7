"""测试轮询周期"""

import asyncio
import pytest
from unittest.mock import Mock, AsyncMock

from not_today.models.monitoring import (CheckResult, CheckStatus, EventKind, LastCheck,
                                         Service, ServiceSnapshot)
from not_today.services.config_manager import ServiceDefinition
from not_today.services.poll_cycle import PollCycle
from not_today.services.state_store import StateStore
from not_today.utils.exceptions import PollCycleError, StoreError


def up(service_id, version=None, latency=20):
    return CheckResult(service_id=service_id, status=CheckStatus.UP, latency=latency,
                       detected_version=version)


def down(service_id):
    return CheckResult(service_id=service_id, status=CheckStatus.DOWN, latency=15,
                       error_message='HTTP 503: Service Unavailable')


class TestPollCycle:
    """测试PollCycle类"""

    def setup_method(self):
        """测试前准备"""
        self.store = StateStore()
        self.store.logger = Mock()
        self.store.sync_services([
            ServiceDefinition(name='api', url='https://api.example.com/health'),
        ])
        self.service = self.store.get_services()[0]

        self.checker = Mock()
        self.checker.check = AsyncMock()
        self.dispatcher = Mock()
        self.dispatcher.dispatch = AsyncMock()

        self.poll_cycle = PollCycle(self.store, self.checker, self.dispatcher)
        self.poll_cycle.logger = Mock()

    @pytest.mark.asyncio
    async def test_first_poll_records_without_event(self):
        """测试首次轮询只记录结果不发送通知"""
        self.checker.check.return_value = up(self.service.id, '1.0.0')

        report = await self.poll_cycle.run_poll_cycle()

        assert report.services_checked == 1
        assert report.results_recorded == 1
        assert report.status_counts == {'UP': 1}
        assert report.events == []
        self.dispatcher.dispatch.assert_not_called()

        latest = self.store.latest_result(self.service.id)
        assert latest.status == CheckStatus.UP
        assert latest.detected_version == '1.0.0'

    @pytest.mark.asyncio
    async def test_outage_dispatches_service_down(self):
        """测试服务从UP变为DOWN时发送通知"""
        await self.store.create_check_result(up(self.service.id))
        self.checker.check.return_value = down(self.service.id)

        report = await self.poll_cycle.run_poll_cycle()

        self.dispatcher.dispatch.assert_awaited_once()
        service, event = self.dispatcher.dispatch.call_args[0]
        assert service == self.service
        assert event.kind == EventKind.SERVICE_DOWN
        assert event.previous_status == CheckStatus.UP
        assert event.current_status == CheckStatus.DOWN
        assert report.events == [('api', event)]

    @pytest.mark.asyncio
    async def test_version_bump_dispatches_version_change(self):
        """测试版本变化时发送通知"""
        await self.store.create_check_result(up(self.service.id, '1.0.0'))
        self.checker.check.return_value = up(self.service.id, '1.1.0')

        await self.poll_cycle.run_poll_cycle()

        event = self.dispatcher.dispatch.call_args[0][1]
        assert event.kind == EventKind.VERSION_CHANGE
        assert event.previous_version == '1.0.0'
        assert event.current_version == '1.1.0'

    @pytest.mark.asyncio
    async def test_evaluates_against_loaded_snapshot(self):
        """测试状态判定使用周期开始时加载的上一次结果"""
        await self.store.create_check_result(up(self.service.id))
        self.checker.check.return_value = up(self.service.id)

        await self.poll_cycle.run_poll_cycle()
        self.checker.check.return_value = down(self.service.id)
        await self.poll_cycle.run_poll_cycle()
        await self.poll_cycle.run_poll_cycle()

        self.dispatcher.dispatch.assert_awaited_once()
        assert len(self.store.get_history(self.service.id)) == 4

    @pytest.mark.asyncio
    async def test_empty_service_set(self):
        """测试没有服务时不检查也不持久化"""
        store = Mock()
        store.list_services_with_last_check = AsyncMock(return_value=[])
        store.create_check_result = AsyncMock()
        poll_cycle = PollCycle(store, self.checker, self.dispatcher)
        poll_cycle.logger = Mock()

        report = await poll_cycle.run_poll_cycle()

        assert report.services_checked == 0
        assert report.results_recorded == 0
        assert report.finished_at is not None
        self.checker.check.assert_not_called()
        store.create_check_result.assert_not_called()
        poll_cycle.logger.info.assert_any_call("没有需要检查的服务")

    @pytest.mark.asyncio
    async def test_load_failure_raises(self):
        """测试加载服务列表失败时中止周期"""
        store = Mock()
        store.list_services_with_last_check = AsyncMock(side_effect=OSError('disk gone'))
        poll_cycle = PollCycle(store, self.checker, self.dispatcher)
        poll_cycle.logger = Mock()

        with pytest.raises(PollCycleError) as exc_info:
            await poll_cycle.run_poll_cycle()

        assert isinstance(exc_info.value.cause, OSError)
        self.checker.check.assert_not_called()

    @pytest.mark.asyncio
    async def test_persist_failure_isolated(self):
        """测试单个服务保存失败不影响其他服务"""
        services = [Service(id=f'svc-{i}', name=f'svc-{i}', url=f'https://{i}.example.com')
                    for i in range(3)]
        store = Mock()
        store.list_services_with_last_check = AsyncMock(return_value=[
            ServiceSnapshot(service=s, last_check=LastCheck(CheckStatus.UP))
            for s in services
        ])

        async def create_check_result(result):
            if result.service_id == 'svc-1':
                raise StoreError('write failed', service_id='svc-1')

        store.create_check_result = AsyncMock(side_effect=create_check_result)
        self.checker.check = AsyncMock(side_effect=lambda s: down(s.id))
        poll_cycle = PollCycle(store, self.checker, self.dispatcher)
        poll_cycle.logger = Mock()

        report = await poll_cycle.run_poll_cycle()

        assert store.create_check_result.await_count == 3
        assert report.results_recorded == 2
        assert report.persist_failures == 1
        dispatched = {c[0][0].id for c in self.dispatcher.dispatch.call_args_list}
        assert dispatched == {'svc-0', 'svc-2'}

    @pytest.mark.asyncio
    async def test_checker_exception_becomes_error_result(self):
        """测试检查器异常转换为ERROR结果"""
        self.checker.check.side_effect = RuntimeError('unexpected')

        report = await self.poll_cycle.run_poll_cycle()

        assert report.status_counts == {'ERROR': 1}
        latest = self.store.latest_result(self.service.id)
        assert latest.status == CheckStatus.ERROR
        assert latest.error_message == 'unexpected'

    @pytest.mark.asyncio
    async def test_dispatch_failure_logged(self):
        """测试通知分发异常不会中止周期"""
        await self.store.create_check_result(up(self.service.id))
        self.checker.check.return_value = down(self.service.id)
        self.dispatcher.dispatch.side_effect = RuntimeError('dispatch failed')

        report = await self.poll_cycle.run_poll_cycle()

        assert report.results_recorded == 1
        assert len(report.events) == 1
        self.poll_cycle.logger.error.assert_called()

    @pytest.mark.asyncio
    async def test_checks_bounded_by_max_concurrency(self):
        """测试并发检查数量受限"""
        self.store.sync_services([
            ServiceDefinition(name=f'svc-{i}', url=f'https://{i}.example.com')
            for i in range(6)
        ])
        in_flight = 0
        peak = 0

        async def check(service):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return up(service.id)

        self.checker.check = AsyncMock(side_effect=check)
        self.poll_cycle.max_concurrent_checks = 2

        report = await self.poll_cycle.run_poll_cycle()

        assert report.services_checked == 7
        assert peak == 2

    @pytest.mark.asyncio
    async def test_done_log_reports_recorded_count(self):
        """测试周期结束日志包含记录数量"""
        self.checker.check.return_value = up(self.service.id)

        await self.poll_cycle.run_poll_cycle()

        messages = [c[0][0] for c in self.poll_cycle.logger.info.call_args_list]
        assert any('记录了 1 条结果' in message for message in messages)
