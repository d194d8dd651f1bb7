"""配置验证工具"""

from typing import Dict, Any, List, Set

from .exceptions import ConfigError

VALID_LOG_LEVELS = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
SUPPORTED_CHANNEL_TYPES = ['webhook', 'telegram']
SUPPORTED_EVENTS = ['SERVICE_DOWN', 'SERVICE_UP', 'VERSION_CHANGE', 'STATUS_CHANGE']


def _is_http_url(value: Any) -> bool:
    return isinstance(value, str) and value.startswith(('http://', 'https://'))


class ConfigValidator:
    """配置验证器"""

    @staticmethod
    def validate_global_config(global_config: Dict[str, Any]) -> None:
        """
        验证全局配置

        Args:
            global_config: 全局配置

        Raises:
            ConfigError: 配置验证失败
        """
        if not isinstance(global_config, dict):
            raise ConfigError("全局配置必须是字典类型")

        for key in ('poll_interval_ms', 'max_concurrent_checks'):
            value = global_config.get(key)
            if value is not None:
                if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                    raise ConfigError(f"{key} 必须是正整数")

        for key in ('request_timeout', 'delivery_timeout'):
            value = global_config.get(key)
            if value is not None:
                if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
                    raise ConfigError(f"{key} 必须是正数")

        polling_enabled = global_config.get('polling_enabled')
        if polling_enabled is not None and not isinstance(polling_enabled, bool):
            raise ConfigError("polling_enabled 必须是布尔值")

        log_level = global_config.get('log_level')
        if log_level is not None and log_level not in VALID_LOG_LEVELS:
            raise ConfigError(f"log_level 必须是以下值之一: {VALID_LOG_LEVELS}")

    @staticmethod
    def validate_service_config(index: int, config: Dict[str, Any]) -> None:
        """
        验证服务配置

        Args:
            index: 服务在列表中的位置
            config: 服务配置

        Raises:
            ConfigError: 配置验证失败
        """
        if not isinstance(config, dict):
            raise ConfigError(f"第 {index + 1} 个服务的配置必须是字典类型")

        for field in ('name', 'url'):
            if not config.get(field):
                raise ConfigError(f"第 {index + 1} 个服务缺少必需的配置项: {field}")

        if not _is_http_url(config['url']):
            raise ConfigError(
                f"服务 '{config['name']}' 的URL必须以 http:// 或 https:// 开头: {config['url']}")

    @staticmethod
    def validate_services(services: List[Dict[str, Any]]) -> None:
        """
        验证服务列表，URL是服务的唯一标识

        Args:
            services: 服务配置列表

        Raises:
            ConfigError: 配置验证失败
        """
        if not isinstance(services, list):
            raise ConfigError("services配置必须是列表类型")

        seen_urls = set()
        for index, service_config in enumerate(services):
            ConfigValidator.validate_service_config(index, service_config)
            url = service_config['url']
            if url in seen_urls:
                raise ConfigError(f"服务URL重复: {url}")
            seen_urls.add(url)

        service_names = {service_config['name'] for service_config in services}
        for service_config in services:
            ConfigValidator.validate_dependencies(service_config, service_names)

    @staticmethod
    def validate_dependencies(service_config: Dict[str, Any], service_names: Set[str]) -> None:
        """
        验证服务依赖，depends_on 中的每一项必须是已配置的其他服务名称

        Args:
            service_config: 服务配置
            service_names: 所有已配置的服务名称

        Raises:
            ConfigError: 配置验证失败
        """
        name = service_config['name']
        depends_on = service_config.get('depends_on')
        if depends_on is None:
            return

        if not isinstance(depends_on, list):
            raise ConfigError(f"服务 '{name}' 的depends_on必须是列表类型")

        for dependency in depends_on:
            if not isinstance(dependency, str):
                raise ConfigError(f"服务 '{name}' 的depends_on只能包含服务名称: {dependency}")
            if dependency == name:
                raise ConfigError(f"服务 '{name}' 不能依赖自身")
            if dependency not in service_names:
                raise ConfigError(f"服务 '{name}' 依赖的服务 '{dependency}' 未在配置中声明")

    @staticmethod
    def validate_channel_config(channel_config: Dict[str, Any]) -> None:
        """
        验证通知渠道配置

        Args:
            channel_config: 通知渠道配置

        Raises:
            ConfigError: 配置验证失败
        """
        if not isinstance(channel_config, dict):
            raise ConfigError("通知渠道配置必须是字典类型")

        for field in ('name', 'type'):
            if not channel_config.get(field):
                raise ConfigError(f"通知渠道配置缺少必需的配置项: {field}")

        name = channel_config['name']
        channel_type = str(channel_config['type']).lower()
        if channel_type not in SUPPORTED_CHANNEL_TYPES:
            raise ConfigError(
                f"通知渠道 '{name}' 的类型 '{channel_config['type']}' 不受支持。"
                f"支持的类型: {SUPPORTED_CHANNEL_TYPES}")

        if channel_type == 'webhook' and not _is_http_url(channel_config.get('url')):
            raise ConfigError(f"Webhook渠道 '{name}' 缺少有效的url配置")

        if channel_type == 'telegram':
            for field in ('token', 'chat_id'):
                if not channel_config.get(field):
                    raise ConfigError(f"Telegram渠道 '{name}' 缺少必需的配置项: {field}")

        enabled = channel_config.get('enabled', True)
        if not isinstance(enabled, bool):
            raise ConfigError(f"通知渠道 '{name}' 的enabled必须是布尔值")

        events = channel_config.get('events', [])
        if not isinstance(events, list):
            raise ConfigError(f"通知渠道 '{name}' 的events必须是列表类型")
        for event in events:
            if str(event).strip().upper() not in SUPPORTED_EVENTS:
                raise ConfigError(
                    f"通知渠道 '{name}' 订阅了不支持的事件 '{event}'。"
                    f"支持的事件: {SUPPORTED_EVENTS}")
