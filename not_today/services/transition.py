"""状态变化判定

将新的检查结果与该服务上一次存储的结果比较，决定是否需要发送通知。
"""

from typing import Optional

from ..models.monitoring import (CheckResult, CheckStatus, EventKind, LastCheck,
                                 Service, StatusEvent)
from ..utils.log_manager import get_logger

logger = get_logger('poller.transition')


def evaluate_transition(service: Service, previous: Optional[LastCheck],
                        current: CheckResult) -> Optional[StatusEvent]:
    """
    判定状态变化事件

    Args:
        service: 服务
        previous: 本周期之前最近一次的检查结果，首次检查时为None
        current: 本周期的检查结果

    Returns:
        Optional[StatusEvent]: 需要通知的事件，每次最多一个
    """
    if previous is None:
        logger.debug(f"服务 {service.name} 没有历史记录，初始状态: {current.status.value}")
        return None

    # 状态变化优先于版本变化
    if current.status != previous.status:
        kind = (EventKind.SERVICE_UP if current.status == CheckStatus.UP
                else EventKind.SERVICE_DOWN)
        logger.info(
            f"服务 {service.name} 状态变化: "
            f"{previous.status.value} -> {current.status.value}"
        )
        return StatusEvent(
            kind=kind,
            previous_status=previous.status,
            current_status=current.status,
            previous_version=previous.detected_version,
            current_version=current.detected_version,
            timestamp=current.timestamp
        )

    if (current.status == CheckStatus.UP
            and previous.detected_version is not None
            and current.detected_version is not None
            and current.detected_version != previous.detected_version):
        logger.info(
            f"服务 {service.name} 版本变化: "
            f"{previous.detected_version} -> {current.detected_version}"
        )
        return StatusEvent(
            kind=EventKind.VERSION_CHANGE,
            previous_status=CheckStatus.UP,
            current_status=CheckStatus.UP,
            previous_version=previous.detected_version,
            current_version=current.detected_version,
            timestamp=current.timestamp
        )

    return None
