"""HTTP服务检查器"""

import asyncio
import json
import time
from typing import Any, Optional

import aiohttp

from .version import detect_version
from ..models.monitoring import CheckResult, CheckStatus, Service
from ..utils.log_manager import get_logger

USER_AGENT = 'ServiceReliabilityMonitor/1.0'
DEFAULT_TIMEOUT = 10


class HttpChecker:
    """对单个服务发起一次有超时限制的GET请求并对结果分类"""

    def __init__(self, timeout: float = DEFAULT_TIMEOUT, user_agent: str = USER_AGENT):
        """
        初始化HTTP检查器

        Args:
            timeout: 单次检查的总超时时间（秒）
            user_agent: 请求使用的 User-Agent
        """
        self.timeout = timeout
        self.user_agent = user_agent
        self.logger = get_logger('checker.http')
        self._clock = time.monotonic

    def _elapsed_ms(self, start: float) -> int:
        return int(round((self._clock() - start) * 1000))

    @staticmethod
    def _is_up(status_code: int) -> bool:
        """2xx 和 3xx 视为服务可用"""
        return 200 <= status_code < 400

    async def _read_json_body(self, response: aiohttp.ClientResponse) -> Optional[Any]:
        """
        读取并解析JSON响应体

        读取或解析失败时返回None，不影响状态判断。

        Args:
            response: HTTP响应

        Returns:
            解析后的响应体或None
        """
        content_type = response.headers.get('content-type', '')
        if 'json' not in content_type.lower():
            return None

        try:
            content = await response.text()
            return json.loads(content)
        except (ValueError, aiohttp.ClientError, asyncio.TimeoutError) as e:
            self.logger.debug(f"响应体无法解析为JSON: {e}")
            return None

    async def check(self, service: Service) -> CheckResult:
        """
        检查单个服务

        Args:
            service: 被检查的服务

        Returns:
            CheckResult: 检查结果，任何失败都不会抛出异常
        """
        start = self._clock()

        try:
            timeout = aiohttp.ClientTimeout(total=self.timeout)
            headers = {'User-Agent': self.user_agent}

            async with aiohttp.ClientSession(timeout=timeout, headers=headers) as session:
                async with session.get(service.url) as response:
                    latency = self._elapsed_ms(start)
                    body = await self._read_json_body(response)
                    detected_version = detect_version(response.headers, body)

                    if self._is_up(response.status):
                        return CheckResult(
                            service_id=service.id,
                            status=CheckStatus.UP,
                            latency=latency,
                            detected_version=detected_version
                        )

                    return CheckResult(
                        service_id=service.id,
                        status=CheckStatus.DOWN,
                        latency=latency,
                        detected_version=detected_version,
                        error_message=f"HTTP {response.status}: {response.reason}"
                    )

        except asyncio.TimeoutError:
            error_message = f"Request timed out after {self.timeout:g}s"
        except aiohttp.ClientError as e:
            error_message = str(e) or e.__class__.__name__
        except Exception as e:
            error_message = str(e) or e.__class__.__name__
            self.logger.warning(f"检查服务 {service.name} 时发生意外异常: {error_message}")

        return CheckResult(
            service_id=service.id,
            status=CheckStatus.ERROR,
            latency=self._elapsed_ms(start),
            error_message=error_message
        )
