"""配置管理器"""

import os
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional

import yaml

from ..models.monitoring import ChannelType, EventKind, NotificationChannel
from ..utils.config_validator import ConfigValidator
from ..utils.exceptions import ConfigError, ErrorCode
from ..utils.log_manager import get_logger

POLL_INTERVAL_ENV = 'POLL_INTERVAL_MS'


@dataclass
class MonitorSettings:
    """全局运行参数"""
    poll_interval_ms: int = 60000
    polling_enabled: bool = True
    request_timeout: float = 10
    delivery_timeout: float = 30
    max_concurrent_checks: int = 10
    log_level: str = 'INFO'
    log_file: Optional[str] = None
    max_log_size: int = 10 * 1024 * 1024
    log_backup_count: int = 5
    state_dir: Optional[str] = None

    def logging_config(self) -> Dict[str, Any]:
        """转换为 LogManager 使用的配置"""
        log_config = {
            'log_level': self.log_level,
            'enable_console': True,
            'enable_file': bool(self.log_file)
        }
        if self.log_file:
            log_config['log_file'] = self.log_file
            log_config['max_file_size'] = self.max_log_size
            log_config['backup_count'] = self.log_backup_count
        return log_config


@dataclass
class ServiceDefinition:
    """配置文件中声明的服务，URL是唯一标识"""
    name: str
    url: str
    expected_version: Optional[str] = None
    environment: Optional[str] = None
    depends_on: List[str] = field(default_factory=list)


@dataclass
class AppConfig:
    """应用配置，启动时显式构造并传给各组件"""
    settings: MonitorSettings = field(default_factory=MonitorSettings)
    services: List[ServiceDefinition] = field(default_factory=list)
    channels: List[NotificationChannel] = field(default_factory=list)


class ConfigManager:
    """配置管理器，负责YAML配置文件的加载、解析和验证"""

    def __init__(self, config_path: str):
        """
        初始化配置管理器

        Args:
            config_path: 配置文件路径
        """
        self.config_path = config_path
        self.raw_config: Dict[str, Any] = {}
        self.config: Optional[AppConfig] = None
        self.last_modified: Optional[float] = None
        self.logger = get_logger('config_manager')

    def load_config(self) -> AppConfig:
        """
        加载YAML配置文件

        Returns:
            AppConfig: 解析后的配置

        Raises:
            ConfigError: 配置加载或验证失败
        """
        self.logger.info(f"开始加载配置文件: {self.config_path}")

        try:
            with open(self.config_path, 'r', encoding='utf-8') as file:
                raw_config = yaml.safe_load(file)
        except FileNotFoundError:
            self.logger.error(f"配置文件不存在: {self.config_path}")
            raise ConfigError(f"配置文件不存在: {self.config_path}",
                              ErrorCode.CONFIG_FILE_NOT_FOUND, config_path=self.config_path)
        except PermissionError:
            self.logger.error(f"没有权限读取配置文件: {self.config_path}")
            raise ConfigError(f"没有权限读取配置文件: {self.config_path}",
                              config_path=self.config_path)
        except yaml.YAMLError as e:
            self.logger.error(f"YAML格式错误: {e}")
            raise ConfigError(f"YAML格式错误: {e}", ErrorCode.CONFIG_PARSE_ERROR,
                              config_path=self.config_path, cause=e)

        if raw_config is None:
            self.logger.error("配置文件为空")
            raise ConfigError("配置文件为空", config_path=self.config_path)

        self._validate_config(raw_config)
        config = self._build_config(raw_config)

        self.logger.info(
            f"配置验证成功，包含 {len(config.services)} 个服务和 "
            f"{len(config.channels)} 个通知渠道"
        )

        if self.raw_config:
            self._log_config_changes(self.raw_config, raw_config)
        else:
            self.logger.info("首次加载配置文件")

        self.raw_config = raw_config
        self.config = config
        self.last_modified = os.path.getmtime(self.config_path)
        return config

    def _validate_config(self, config: Dict[str, Any]) -> None:
        """
        验证配置文件内容

        Args:
            config: 配置字典

        Raises:
            ConfigError: 配置验证失败
        """
        if not isinstance(config, dict):
            raise ConfigError("配置文件根节点必须是字典类型")

        if 'global' in config:
            ConfigValidator.validate_global_config(config['global'] or {})

        if 'services' in config:
            ConfigValidator.validate_services(config['services'] or [])

        if 'channels' in config:
            channels = config['channels'] or []
            if not isinstance(channels, list):
                raise ConfigError("channels配置必须是列表类型")

            seen_ids = set()
            for channel_config in channels:
                ConfigValidator.validate_channel_config(channel_config)
                channel_id = str(channel_config.get('id') or channel_config['name'])
                if channel_id in seen_ids:
                    raise ConfigError(f"通知渠道ID重复: {channel_id}")
                seen_ids.add(channel_id)

    def _build_config(self, raw_config: Dict[str, Any]) -> AppConfig:
        """把验证过的配置字典转换为 AppConfig"""
        global_config = raw_config.get('global') or {}
        settings = MonitorSettings(
            poll_interval_ms=global_config.get('poll_interval_ms', 60000),
            polling_enabled=global_config.get('polling_enabled', True),
            request_timeout=global_config.get('request_timeout', 10),
            delivery_timeout=global_config.get('delivery_timeout', 30),
            max_concurrent_checks=global_config.get('max_concurrent_checks', 10),
            log_level=global_config.get('log_level', 'INFO'),
            log_file=global_config.get('log_file'),
            max_log_size=global_config.get('max_log_size', 10 * 1024 * 1024),
            log_backup_count=global_config.get('log_backup_count', 5),
            state_dir=global_config.get('state_dir')
        )

        env_interval = os.environ.get(POLL_INTERVAL_ENV)
        if env_interval:
            try:
                settings.poll_interval_ms = int(env_interval)
            except ValueError:
                raise ConfigError(f"环境变量 {POLL_INTERVAL_ENV} 必须是整数: {env_interval}")
            if settings.poll_interval_ms <= 0:
                raise ConfigError(f"环境变量 {POLL_INTERVAL_ENV} 必须是正整数")

        services = [
            ServiceDefinition(
                name=service_config['name'],
                url=service_config['url'],
                expected_version=self._optional_str(service_config.get('expected_version')),
                environment=self._optional_str(service_config.get('environment')),
                depends_on=[str(name) for name in service_config.get('depends_on') or []]
            )
            for service_config in raw_config.get('services') or []
        ]

        channels = [self._build_channel(channel_config)
                    for channel_config in raw_config.get('channels') or []]

        return AppConfig(settings=settings, services=services, channels=channels)

    @staticmethod
    def _optional_str(value: Any) -> Optional[str]:
        return None if value is None else str(value)

    @staticmethod
    def _build_channel(channel_config: Dict[str, Any]) -> NotificationChannel:
        channel_type = ChannelType(str(channel_config['type']).upper())
        config = {}
        if channel_type == ChannelType.TELEGRAM:
            config = {
                'token': str(channel_config['token']),
                'chat_id': str(channel_config['chat_id'])
            }

        return NotificationChannel(
            id=str(channel_config.get('id') or channel_config['name']),
            name=channel_config['name'],
            type=channel_type,
            enabled=channel_config.get('enabled', True),
            events=frozenset(EventKind(str(event).strip().upper())
                             for event in channel_config.get('events', [])),
            url=channel_config.get('url'),
            config=config
        )

    def get_config(self) -> AppConfig:
        """
        获取当前配置，缓存失效后重新加载

        Returns:
            AppConfig: 当前配置
        """
        if self.config is None:
            return self.load_config()
        return self.config

    def invalidate(self) -> None:
        """使缓存的配置失效，下次 get_config 时重新读取文件"""
        self.config = None
        self.logger.debug("配置缓存已失效")

    def is_config_changed(self) -> bool:
        """
        检查配置文件是否已修改

        Returns:
            bool: 配置文件是否已修改
        """
        try:
            if not os.path.exists(self.config_path):
                return False

            current_modified = os.path.getmtime(self.config_path)
            return self.last_modified is None or current_modified > self.last_modified

        except OSError:
            return False

    def reload_config(self) -> AppConfig:
        """
        重新加载配置文件

        Returns:
            AppConfig: 新的配置

        Raises:
            ConfigError: 配置重新加载失败，错误代码为 CONFIG_RELOAD_ERROR，
                cause 为具体的加载或验证错误
        """
        self.logger.info("重新加载配置文件")
        try:
            return self.load_config()
        except ConfigError as e:
            raise ConfigError(f"配置重新加载失败: {e.message}", ErrorCode.CONFIG_RELOAD_ERROR,
                              config_path=self.config_path, cause=e)

    def _log_config_changes(self, old_config: Dict[str, Any], new_config: Dict[str, Any]) -> None:
        """
        记录配置变更

        Args:
            old_config: 旧配置
            new_config: 新配置
        """
        old_urls = {s['url']: s for s in old_config.get('services') or []}
        new_urls = {s['url']: s for s in new_config.get('services') or []}

        added = set(new_urls) - set(old_urls)
        if added:
            self.logger.info(f"新增服务: {', '.join(sorted(added))}")

        removed = set(old_urls) - set(new_urls)
        if removed:
            self.logger.info(f"配置中移除的服务: {', '.join(sorted(removed))}")

        for url in set(old_urls) & set(new_urls):
            if old_urls[url] != new_urls[url]:
                self.logger.info(f"服务配置已修改: {new_urls[url].get('name')}")

        old_channels = old_config.get('channels') or []
        new_channels = new_config.get('channels') or []
        if len(old_channels) != len(new_channels):
            self.logger.info(f"通知渠道数量变更: {len(old_channels)} -> {len(new_channels)}")
        elif old_channels != new_channels:
            self.logger.info("通知渠道配置已修改")

        if (old_config.get('global') or {}) != (new_config.get('global') or {}):
            self.logger.info("全局配置已修改")
