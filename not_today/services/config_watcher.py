"""配置文件监控器"""

import asyncio
import os
from typing import Callable, List, Optional

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from .config_manager import AppConfig, ConfigManager
from ..utils.exceptions import ConfigError
from ..utils.log_manager import get_logger


class ConfigFileHandler(FileSystemEventHandler):
    """配置文件变更事件处理器"""

    def __init__(self, config_path: str, callback: Callable[[], None]):
        """
        初始化事件处理器

        Args:
            config_path: 配置文件的绝对路径
            callback: 配置变更回调函数
        """
        self.config_path = config_path
        self.callback = callback
        self.logger = get_logger('config_watcher.handler')

    def _matches(self, path) -> bool:
        if isinstance(path, bytes):
            path = os.fsdecode(path)
        return os.path.abspath(path) == self.config_path

    def on_modified(self, event):
        """处理文件修改事件"""
        if not event.is_directory and self._matches(event.src_path):
            self.logger.info(f"检测到配置文件变更: {self.config_path}")
            self.callback()

    def on_moved(self, event):
        """编辑器保存时常用临时文件替换原文件"""
        if not event.is_directory and self._matches(event.dest_path):
            self.logger.info(f"检测到配置文件被替换: {self.config_path}")
            self.callback()


class ConfigWatcher:
    """配置文件监控器，支持热更新

    watchdog 在独立线程中触发事件，重新加载和回调统一投递到事件循环中执行。
    """

    def __init__(self, config_manager: ConfigManager):
        """
        初始化配置监控器

        Args:
            config_manager: 配置管理器实例
        """
        self.config_manager = config_manager
        self.observer: Optional[Observer] = None
        self.loop: Optional[asyncio.AbstractEventLoop] = None
        self.logger = get_logger('config_watcher')
        self.change_callbacks: List[Callable[[AppConfig, AppConfig], None]] = []
        self._running = False

    def add_change_callback(self, callback: Callable[[AppConfig, AppConfig], None]):
        """
        添加配置变更回调函数

        Args:
            callback: 回调函数，参数为(旧配置, 新配置)
        """
        self.change_callbacks.append(callback)

    def _schedule_reload(self):
        """从watchdog线程投递到事件循环"""
        if self.loop is not None and not self.loop.is_closed():
            self.loop.call_soon_threadsafe(self.check_and_reload)
        else:
            self.check_and_reload()

    def check_and_reload(self) -> bool:
        """
        文件确实有更新时重新加载配置并通知回调

        Returns:
            bool: 是否重新加载了配置
        """
        if not self.config_manager.is_config_changed():
            return False

        old_config = self.config_manager.config
        try:
            new_config = self.config_manager.reload_config()
        except ConfigError as e:
            self.logger.error(f"{e}，继续使用旧配置")
            return False

        self.logger.info("配置文件已重新加载")

        for callback in self.change_callbacks:
            try:
                callback(old_config, new_config)
            except Exception as e:
                self.logger.error(f"配置变更回调执行失败: {e}", exc_info=True)

        return True

    def start_watching(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        """
        开始监控配置文件

        Args:
            loop: 执行重新加载的事件循环，为None时在watchdog线程中直接执行

        Raises:
            ConfigError: 启动监控失败
        """
        if self._running:
            self.logger.warning("配置监控器已经在运行")
            return

        self.loop = loop
        config_path = os.path.abspath(self.config_manager.config_path)

        try:
            self.observer = Observer()
            event_handler = ConfigFileHandler(config_path, self._schedule_reload)
            self.observer.schedule(event_handler, os.path.dirname(config_path), recursive=False)
            self.observer.start()
        except Exception as e:
            self.logger.error(f"启动配置监控失败: {e}")
            raise ConfigError(f"启动配置监控失败: {e}", cause=e)

        self._running = True
        self.logger.info(f"开始监控配置文件: {self.config_manager.config_path}")

    def stop_watching(self):
        """停止监控配置文件"""
        if not self._running:
            return

        if self.observer:
            self.observer.stop()
            self.observer.join()
            self.observer = None

        self._running = False
        self.loop = None
        self.logger.info("配置文件监控已停止")

    def is_running(self) -> bool:
        """
        检查监控器是否正在运行

        Returns:
            bool: 监控器是否正在运行
        """
        return self._running
