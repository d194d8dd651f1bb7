"""测试配置管理器"""

import os
import tempfile
import pytest
from unittest.mock import patch

from not_today.models.monitoring import ChannelType, EventKind
from not_today.services.config_manager import ConfigManager, POLL_INTERVAL_ENV
from not_today.utils.exceptions import ConfigError, ErrorCode

VALID_CONFIG = """
global:
  poll_interval_ms: 30000
  polling_enabled: true
  request_timeout: 5
  delivery_timeout: 15
  max_concurrent_checks: 4
  log_level: DEBUG
  state_dir: data

services:
  - name: api
    url: https://api.example.com/health
    expected_version: 1.2
    environment: production
  - name: web
    url: http://web.example.com/
    depends_on: [api]

channels:
  - id: ops-hook
    name: ops-hook
    type: webhook
    url: https://hooks.example.com/notify
    events: [status_change, VERSION_CHANGE]
  - name: oncall
    type: Telegram
    token: "123:abc"
    chat_id: -100123
    enabled: false
    events: [SERVICE_DOWN]
"""


class TestConfigManager:
    """测试ConfigManager类"""

    def setup_method(self):
        """测试前准备"""
        self.temp_files = []

    def teardown_method(self):
        """测试后清理"""
        for path in self.temp_files:
            try:
                os.unlink(path)
            except FileNotFoundError:
                pass

    def _write_config(self, content: str) -> str:
        temp_file = tempfile.NamedTemporaryFile(mode='w', suffix='.yaml', delete=False,
                                                encoding='utf-8')
        temp_file.write(content)
        temp_file.close()
        self.temp_files.append(temp_file.name)
        return temp_file.name

    @patch.dict(os.environ, {}, clear=True)
    def test_load_valid_config(self):
        """测试加载有效配置"""
        manager = ConfigManager(self._write_config(VALID_CONFIG))
        config = manager.load_config()

        settings = config.settings
        assert settings.poll_interval_ms == 30000
        assert settings.request_timeout == 5
        assert settings.delivery_timeout == 15
        assert settings.max_concurrent_checks == 4
        assert settings.state_dir == 'data'

        assert [s.name for s in config.services] == ['api', 'web']
        assert config.services[0].expected_version == '1.2'
        assert config.services[1].environment is None
        assert config.services[0].depends_on == []
        assert config.services[1].depends_on == ['api']

        hook, telegram = config.channels
        assert hook.id == 'ops-hook'
        assert hook.type == ChannelType.WEBHOOK
        assert hook.events == {EventKind.STATUS_CHANGE, EventKind.VERSION_CHANGE}
        assert telegram.id == 'oncall'
        assert telegram.type == ChannelType.TELEGRAM
        assert telegram.enabled is False
        assert telegram.config == {'token': '123:abc', 'chat_id': '-100123'}

        assert manager.last_modified is not None

    @patch.dict(os.environ, {}, clear=True)
    def test_defaults(self):
        """测试默认配置值"""
        config = ConfigManager(self._write_config("services: []\n")).load_config()

        assert config.settings.poll_interval_ms == 60000
        assert config.settings.polling_enabled is True
        assert config.settings.request_timeout == 10
        assert config.settings.delivery_timeout == 30
        assert config.settings.max_concurrent_checks == 10
        assert config.settings.state_dir is None
        assert config.services == []
        assert config.channels == []

    def test_env_overrides_poll_interval(self):
        """测试环境变量覆盖轮询间隔"""
        with patch.dict(os.environ, {POLL_INTERVAL_ENV: '5000'}):
            config = ConfigManager(self._write_config(VALID_CONFIG)).load_config()

        assert config.settings.poll_interval_ms == 5000

    def test_invalid_env_poll_interval(self):
        """测试无效的环境变量"""
        with patch.dict(os.environ, {POLL_INTERVAL_ENV: 'soon'}):
            with pytest.raises(ConfigError, match=POLL_INTERVAL_ENV):
                ConfigManager(self._write_config(VALID_CONFIG)).load_config()

    def test_file_not_found(self):
        """测试配置文件不存在"""
        with pytest.raises(ConfigError) as exc_info:
            ConfigManager('/nonexistent/config.yaml').load_config()

        assert exc_info.value.error_code == ErrorCode.CONFIG_FILE_NOT_FOUND

    def test_invalid_yaml(self):
        """测试YAML格式错误"""
        with pytest.raises(ConfigError) as exc_info:
            ConfigManager(self._write_config("services: [\n")).load_config()

        assert exc_info.value.error_code == ErrorCode.CONFIG_PARSE_ERROR

    def test_empty_file(self):
        """测试空配置文件"""
        with pytest.raises(ConfigError, match="配置文件为空"):
            ConfigManager(self._write_config("")).load_config()

    @pytest.mark.parametrize('content, message', [
        ("global:\n  poll_interval_ms: 0\n", "poll_interval_ms"),
        ("global:\n  request_timeout: -1\n", "request_timeout"),
        ("global:\n  log_level: VERBOSE\n", "log_level"),
        ("global:\n  polling_enabled: 'yes'\n", "polling_enabled"),
        ("services:\n  - name: a\n", "url"),
        ("services:\n  - name: a\n    url: ftp://a.example.com\n", "http"),
        ("services:\n  - {name: a, url: 'https://a.example.com'}\n"
         "  - {name: b, url: 'https://a.example.com'}\n", "服务URL重复"),
        ("channels:\n  - {name: a, type: sms}\n", "不受支持"),
        ("channels:\n  - {name: a, type: webhook}\n", "url"),
        ("channels:\n  - {name: a, type: telegram, token: t}\n", "chat_id"),
        ("channels:\n  - {name: a, type: webhook, url: 'https://h.example.com',"
         " events: [SERVICE_GONE]}\n", "SERVICE_GONE"),
        ("channels:\n  - {name: a, type: webhook, url: 'https://h.example.com'}\n"
         "  - {name: a, type: webhook, url: 'https://h.example.com'}\n", "通知渠道ID重复"),
        ("services:\n  - {name: a, url: 'https://a.example.com', depends_on: db}\n",
         "depends_on必须是列表"),
        ("services:\n  - {name: a, url: 'https://a.example.com', depends_on: [a]}\n",
         "不能依赖自身"),
        ("services:\n  - {name: a, url: 'https://a.example.com', depends_on: [db]}\n",
         "'db' 未在配置中声明"),
    ])
    def test_invalid_config(self, content, message):
        """测试无效配置给出明确的错误信息"""
        with pytest.raises(ConfigError, match=message):
            ConfigManager(self._write_config(content)).load_config()

    @patch.dict(os.environ, {}, clear=True)
    def test_get_config_and_invalidate(self):
        """测试配置缓存与失效"""
        manager = ConfigManager(self._write_config(VALID_CONFIG))

        config = manager.get_config()
        assert manager.get_config() is config

        manager.invalidate()
        reloaded = manager.get_config()
        assert reloaded is not config
        assert reloaded == config

    @patch.dict(os.environ, {}, clear=True)
    def test_is_config_changed(self):
        """测试配置文件修改检测"""
        path = self._write_config(VALID_CONFIG)
        manager = ConfigManager(path)
        assert manager.is_config_changed() is True

        manager.load_config()
        assert manager.is_config_changed() is False

        os.utime(path, (manager.last_modified + 10, manager.last_modified + 10))
        assert manager.is_config_changed() is True

    @patch.dict(os.environ, {}, clear=True)
    def test_reload_config(self):
        """测试重新加载配置"""
        path = self._write_config(VALID_CONFIG)
        manager = ConfigManager(path)
        manager.load_config()

        with open(path, 'w', encoding='utf-8') as f:
            f.write("global:\n  poll_interval_ms: 1000\nservices: []\n")

        config = manager.reload_config()
        assert config.settings.poll_interval_ms == 1000
        assert config.services == []

    @patch.dict(os.environ, {}, clear=True)
    def test_reload_invalid_config(self):
        """测试重新加载无效配置时抛出重新加载错误并保留旧配置"""
        path = self._write_config(VALID_CONFIG)
        manager = ConfigManager(path)
        old_config = manager.load_config()

        with open(path, 'w', encoding='utf-8') as f:
            f.write("global:\n  poll_interval_ms: -5\n")

        with pytest.raises(ConfigError) as exc_info:
            manager.reload_config()

        assert exc_info.value.error_code == ErrorCode.CONFIG_RELOAD_ERROR
        assert exc_info.value.cause.error_code == ErrorCode.CONFIG_VALIDATION_ERROR
        assert exc_info.value.details['config_path'] == path
        assert manager.config is old_config
