#!/usr/bin/env python3
"""
404 Not Today 服务可用性监控主程序入口

组装配置、存储、检查器、通知分发和轮询调度，
处理信号并在退出时优雅关闭。
"""

import argparse
import asyncio
import logging
import os
import signal
import sys
from typing import Optional, Dict, Any

from not_today.checkers.http_checker import HttpChecker
from not_today.models.monitoring import CheckStatus
from not_today.notifications.dispatcher import NotificationDispatcher
from not_today.services.channel_store import ConfigChannelStore
from not_today.services.config_manager import AppConfig, ConfigManager, MonitorSettings
from not_today.services.config_watcher import ConfigWatcher
from not_today.services.poll_cycle import CycleReport, PollCycle
from not_today.services.poll_scheduler import PollScheduler
from not_today.services.state_store import StateStore
from not_today.utils.exceptions import ConfigError, NotTodayError
from not_today.utils.log_manager import log_manager, get_logger

# 版本信息
__version__ = "1.0.0"


class NotTodayApp:
    """服务监控主应用程序类"""

    def __init__(self, config_path: str, log_overrides: Optional[Dict[str, Any]] = None):
        """初始化应用程序

        Args:
            config_path: 配置文件路径
            log_overrides: 命令行指定的日志配置，优先于配置文件
        """
        self.config_path = config_path
        self.log_overrides = log_overrides or {}
        self.logger: Optional[logging.Logger] = None
        self.is_running = False
        self.shutdown_event = asyncio.Event()

        # 核心组件
        self.config_manager: Optional[ConfigManager] = None
        self.config: Optional[AppConfig] = None
        self.config_watcher: Optional[ConfigWatcher] = None
        self.state_store: Optional[StateStore] = None
        self.channel_store: Optional[ConfigChannelStore] = None
        self.checker: Optional[HttpChecker] = None
        self.dispatcher: Optional[NotificationDispatcher] = None
        self.poll_cycle: Optional[PollCycle] = None
        self.scheduler: Optional[PollScheduler] = None

    async def initialize(self):
        """初始化应用程序组件"""
        try:
            # 初始化配置管理器
            self.config_manager = ConfigManager(self.config_path)
            self.config = self.config_manager.load_config()
            settings = self.config.settings

            # 配置日志系统
            self._configure_logging(settings)
            self.logger = get_logger('main')
            self.logger.info("开始初始化服务监控系统")

            # 初始化存储
            self.state_store = StateStore(settings.state_dir)
            self.state_store.sync_services(self.config.services)
            self.channel_store = ConfigChannelStore(self.config.channels)

            # 检查、通知与轮询
            self.checker = HttpChecker(timeout=settings.request_timeout)
            self.dispatcher = NotificationDispatcher(self.channel_store,
                                                     timeout=settings.delivery_timeout)
            self.poll_cycle = PollCycle(self.state_store, self.checker, self.dispatcher,
                                        max_concurrent_checks=settings.max_concurrent_checks)
            self.scheduler = PollScheduler(self.poll_cycle,
                                           interval_ms=settings.poll_interval_ms,
                                           enabled=settings.polling_enabled)

            # 初始化配置监控器
            self.config_watcher = ConfigWatcher(self.config_manager)
            self.config_watcher.add_change_callback(self._on_config_changed_callback)

            self.logger.info("应用程序组件初始化完成")

        except Exception as e:
            if self.logger:
                self.logger.error(f"应用程序初始化失败: {e}", exc_info=True)
            else:
                print(f"应用程序初始化失败: {e}", file=sys.stderr)
            raise

    def _configure_logging(self, settings: MonitorSettings):
        """配置日志系统

        Args:
            settings: 全局运行参数
        """
        log_config = settings.logging_config()
        if self.log_overrides.get('log_level'):
            log_config['log_level'] = self.log_overrides['log_level']
        if self.log_overrides.get('log_file'):
            log_config['log_file'] = self.log_overrides['log_file']
            log_config['enable_file'] = True

        log_manager.configure(log_config)

    def _on_config_changed_callback(self, old_config: AppConfig, new_config: AppConfig):
        """配置文件变更回调"""
        try:
            self.logger.info("检测到配置文件变更，应用新配置")
            settings = new_config.settings

            # 重新配置日志系统
            self._configure_logging(settings)

            # 同步服务和通知渠道
            self.state_store.sync_services(new_config.services)
            self.channel_store.replace(new_config.channels)

            # 更新运行参数
            self.checker.timeout = settings.request_timeout
            self.dispatcher.timeout = settings.delivery_timeout
            self.poll_cycle.max_concurrent_checks = settings.max_concurrent_checks
            self.scheduler.update_interval(settings.poll_interval_ms)
            self.scheduler.set_enabled(settings.polling_enabled)

            self.config = new_config
            self.logger.info("新配置已生效")

        except Exception as e:
            self.logger.error(f"应用新配置失败: {e}", exc_info=True)

    async def start(self):
        """启动应用程序"""
        if self.is_running:
            self.logger.warning("应用程序已经在运行")
            return

        try:
            self.is_running = True
            self.logger.info("启动服务监控系统")

            # 启动配置监控器，重新加载在事件循环中执行
            self.config_watcher.start_watching(asyncio.get_running_loop())

            # 启动轮询调度器
            await self.scheduler.start()

            self.logger.info("服务监控系统启动完成")

            # 等待关闭信号
            await self.shutdown_event.wait()

        except Exception as e:
            self.logger.error(f"应用程序运行异常: {e}", exc_info=True)
            raise
        finally:
            await self.stop()

    async def stop(self):
        """停止应用程序"""
        if not self.is_running:
            return

        self.logger.info("正在停止服务监控系统...")
        self.is_running = False

        try:
            # 停止轮询调度器
            if self.scheduler:
                await self.scheduler.stop()

            # 停止配置监控器
            if self.config_watcher:
                self.config_watcher.stop_watching()

            self.logger.info("服务监控系统已停止")

            # 清理日志管理器
            log_manager.cleanup()

        except Exception as e:
            if self.logger:
                self.logger.error(f"停止应用程序时发生异常: {e}", exc_info=True)
            else:
                print(f"停止应用程序时发生异常: {e}", file=sys.stderr)

    def shutdown(self):
        """触发应用程序关闭"""
        if self.logger:
            self.logger.info("收到关闭信号")
        self.shutdown_event.set()

    def get_status(self) -> Dict[str, Any]:
        """获取应用程序状态

        Returns:
            应用程序状态信息
        """
        status = {
            'is_running': self.is_running,
            'config_path': self.config_path
        }

        if self.scheduler:
            status['scheduler_stats'] = self.scheduler.get_scheduler_stats()

        if self.state_store:
            status['services'] = [
                self.state_store.get_service_stats(service.id)
                for service in self.state_store.get_services()
            ]

        if self.channel_store:
            status['channels'] = [
                {'id': c.id, 'name': c.name, 'type': c.type.value, 'enabled': c.enabled}
                for c in self.channel_store.channels
            ]

        status['logging'] = log_manager.get_log_stats()

        return status


# 全局应用程序实例
app: Optional[NotTodayApp] = None


def signal_handler(signum, frame):
    """信号处理器"""
    signal_name = signal.Signals(signum).name
    print(f"\n收到信号 {signal_name} ({signum})")

    if app:
        app.shutdown()
    else:
        print("应用程序未初始化，直接退出")
        sys.exit(0)


def create_argument_parser() -> argparse.ArgumentParser:
    """创建命令行参数解析器"""
    parser = argparse.ArgumentParser(
        prog='not-today',
        description='404 Not Today - 定时检查HTTP服务可用性，状态或版本变化时发送通知',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
示例用法:
  %(prog)s config.yaml                    # 使用指定配置文件启动监控
  %(prog)s --validate config.yaml        # 验证配置文件格式
  %(prog)s --check-once config.yaml      # 执行一次轮询后退出
  %(prog)s --test-channels config.yaml   # 向所有启用的通知渠道发送测试消息
  %(prog)s --status config.yaml          # 显示已保存的服务状态统计
  %(prog)s --version                      # 显示版本信息

支持的通知渠道:
  - Webhook
  - Telegram

配置文件格式请参考 config/example.yaml
        """
    )

    # 位置参数：配置文件路径
    parser.add_argument(
        'config_file',
        nargs='?',
        help='YAML配置文件路径'
    )

    # 可选参数
    parser.add_argument(
        '--version', '-v',
        action='version',
        version=f'%(prog)s {__version__}'
    )

    parser.add_argument(
        '--validate',
        action='store_true',
        help='验证配置文件格式并退出'
    )

    parser.add_argument(
        '--check-once',
        action='store_true',
        help='执行一次轮询周期后退出'
    )

    parser.add_argument(
        '--test-channels',
        action='store_true',
        help='向启用的通知渠道发送测试通知并退出'
    )

    parser.add_argument(
        '--status',
        action='store_true',
        help='显示状态目录中保存的服务统计并退出'
    )

    parser.add_argument(
        '--log-level',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
        help='设置日志级别（覆盖配置文件设置）'
    )

    parser.add_argument(
        '--log-file',
        help='日志文件路径（覆盖配置文件设置）'
    )

    return parser


def validate_config_file(config_path: str) -> bool:
    """验证配置文件

    Args:
        config_path: 配置文件路径

    Returns:
        验证是否成功
    """
    try:
        print(f"正在验证配置文件: {config_path}")

        # 检查文件是否存在
        if not os.path.exists(config_path):
            print(f"❌ 配置文件不存在: {config_path}")
            return False

        config = ConfigManager(config_path).load_config()
        settings = config.settings

        print(f"✅ 配置文件验证成功!")
        print(f"   - 轮询间隔: {settings.poll_interval_ms}ms"
              f" ({'启用' if settings.polling_enabled else '禁用'})")
        print(f"   - 服务数量: {len(config.services)}")
        print(f"   - 通知渠道数量: {len(config.channels)}")

        if config.services:
            print("   - 配置的服务:")
            for service in config.services:
                depends = f", 依赖: {', '.join(service.depends_on)}" if service.depends_on else ''
                print(f"     * {service.name} ({service.url}){depends}")

        if config.channels:
            print("   - 配置的通知渠道:")
            for channel in config.channels:
                events = ', '.join(sorted(e.value for e in channel.events)) or '无'
                state = '' if channel.enabled else ' [禁用]'
                print(f"     * {channel.name} ({channel.type.value}){state}: {events}")

        return True

    except ConfigError as e:
        print(f"❌ 配置文件验证失败: {e}")
        return False


def print_cycle_report(app: NotTodayApp, report: CycleReport):
    """输出轮询周期结果"""
    print(f"✅ 轮询完成，共检查 {report.services_checked} 个服务:")

    for service in app.state_store.get_services():
        result = app.state_store.latest_result(service.id)
        if result is None:
            print(f"   ❌ {service.name}: 没有检查结果")
        elif result.status == CheckStatus.UP:
            version = f", 版本: {result.detected_version}" if result.detected_version else ''
            print(f"   ✅ {service.name}: UP (延迟: {result.latency}ms{version})")
        else:
            print(f"   ❌ {service.name}: {result.status.value} - {result.error_message}")

    for service_name, event in report.events:
        print(f"   📢 {service_name}: {event.kind.value}")


async def check_once(config_path: str, log_overrides: Optional[Dict[str, Any]] = None) -> bool:
    """执行一次轮询周期

    Args:
        config_path: 配置文件路径
        log_overrides: 日志配置覆盖

    Returns:
        是否所有服务都可用
    """
    try:
        print(f"正在执行轮询: {config_path}")

        app = NotTodayApp(config_path, log_overrides)
        await app.initialize()

        report = await app.scheduler.run_poll_cycle()
        print_cycle_report(app, report)

        up_count = report.status_counts.get(CheckStatus.UP.value, 0)
        return report.persist_failures == 0 and up_count == report.services_checked

    except NotTodayError as e:
        print(f"❌ 轮询失败: {e}")
        return False


async def run_channel_test(config_path: str, log_overrides: Optional[Dict[str, Any]] = None) -> bool:
    """向所有启用的通知渠道发送测试通知

    Args:
        config_path: 配置文件路径
        log_overrides: 日志配置覆盖

    Returns:
        是否全部发送成功
    """
    try:
        print(f"正在测试通知渠道: {config_path}")

        app = NotTodayApp(config_path, log_overrides)
        await app.initialize()

        channels = await app.channel_store.list_enabled_channels()
        if not channels:
            print("⚠️ 没有启用的通知渠道")
            return False

        all_success = True
        for channel in channels:
            try:
                await app.dispatcher.send_test_notification(channel)
                print(f"   ✅ {channel.name} ({channel.type.value})")
            except NotTodayError as e:
                print(f"   ❌ {channel.name} ({channel.type.value}): {e.message}")
                all_success = False

        return all_success

    except NotTodayError as e:
        print(f"❌ 通知渠道测试失败: {e}")
        return False


def show_status(config_path: str) -> bool:
    """显示状态目录中保存的服务统计

    Args:
        config_path: 配置文件路径

    Returns:
        是否成功读取状态
    """
    try:
        config = ConfigManager(config_path).load_config()
        if not config.settings.state_dir:
            print("❌ 配置文件未设置 state_dir，没有可显示的状态")
            return False

        store = StateStore(config.settings.state_dir)
        services = store.get_services()
        print(f"服务状态 ({config.settings.state_dir}), 共 {len(services)} 个服务:")

        for service in services:
            stats = store.get_service_stats(service.id)
            latest = stats['latest_check']
            current = latest.status.value if latest else '未检查'
            avg_latency = stats['avg_latency_24h']
            latency_text = f"{avg_latency:.0f}ms" if avg_latency is not None else '-'
            print(f"   * {service.name} [{current}] {service.url}")
            print(f"     24小时可用率: {stats['uptime_24h']:.2f}%, "
                  f"平均延迟: {latency_text}, 检查次数: {stats['total_checks_24h']}")

            if stats['expected_version'] or stats['detected_version']:
                drift = ' ⚠️ 版本不一致' if stats['version_mismatch'] else ''
                print(f"     期望版本: {stats['expected_version'] or 'N/A'}, "
                      f"当前版本: {stats['detected_version'] or 'N/A'}{drift}")

            if stats['depends_on']:
                print(f"     依赖: {', '.join(stats['depends_on'])}")

        return True

    except NotTodayError as e:
        print(f"❌ 读取状态失败: {e}")
        return False


def _log_overrides(args) -> Dict[str, Any]:
    overrides = {}
    if args.log_level:
        overrides['log_level'] = args.log_level
    if args.log_file:
        overrides['log_file'] = args.log_file
    return overrides


async def main():
    """主函数"""
    global app

    # 解析命令行参数
    parser = create_argument_parser()
    args = parser.parse_args()

    # 检查配置文件参数
    if not args.config_file:
        parser.print_help()
        sys.exit(1)

    config_path = args.config_file

    # 检查配置文件是否存在
    if not os.path.exists(config_path):
        print(f"配置文件不存在: {config_path}", file=sys.stderr)
        sys.exit(1)

    log_overrides = _log_overrides(args)

    # 处理特殊模式
    if args.validate:
        success = validate_config_file(config_path)
        sys.exit(0 if success else 1)

    if args.status:
        success = show_status(config_path)
        sys.exit(0 if success else 1)

    if args.test_channels:
        success = await run_channel_test(config_path, log_overrides)
        sys.exit(0 if success else 1)

    if args.check_once:
        success = await check_once(config_path, log_overrides)
        sys.exit(0 if success else 1)

    try:
        # 创建应用程序实例
        app = NotTodayApp(config_path, log_overrides)

        # 注册信号处理器
        signal.signal(signal.SIGINT, signal_handler)  # Ctrl+C
        signal.signal(signal.SIGTERM, signal_handler)  # 终止信号

        # 初始化并启动应用程序
        await app.initialize()

        print(f"404 Not Today v{__version__} 已启动")
        print(f"配置文件: {config_path}")
        print("按 Ctrl+C 停止程序")

        await app.start()

    except KeyboardInterrupt:
        print("\n用户中断程序")
    except ConfigError as e:
        print(f"配置错误: {e}", file=sys.stderr)
        sys.exit(1)
    except NotTodayError as e:
        print(f"服务监控系统错误: {e}", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        print(f"未预期的错误: {e}", file=sys.stderr)
        import traceback
        traceback.print_exc()
        sys.exit(1)
    finally:
        if app:
            await app.stop()


def run():
    """命令行入口"""
    # 设置事件循环策略（Windows兼容性）
    if sys.platform == "win32":
        asyncio.set_event_loop_policy(asyncio.WindowsProactorEventLoopPolicy())

    # 运行主程序
    asyncio.run(main())


if __name__ == "__main__":
    run()
