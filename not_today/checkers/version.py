"""从响应中提取服务版本号"""

import math
from typing import Any, Mapping, Optional

VERSION_HEADER = 'x-version'


def version_to_string(value: Any) -> str:
    """
    把JSON中的版本值转换为字符串

    与浏览器端 String() 的结果保持一致：true/false/null 小写，
    整数值的浮点数不带小数部分，数组按逗号拼接。

    Args:
        value: JSON解析后的任意值

    Returns:
        str: 版本号字符串
    """
    if isinstance(value, str):
        return value
    if value is None:
        return 'null'
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, float):
        if math.isnan(value):
            return 'NaN'
        if math.isinf(value):
            return 'Infinity' if value > 0 else '-Infinity'
        if value.is_integer():
            return str(int(value))
        return repr(value)
    if isinstance(value, list):
        return ','.join('' if item is None else version_to_string(item) for item in value)
    if isinstance(value, dict):
        return '[object Object]'
    return str(value)


def detect_version(headers: Optional[Mapping[str, str]], body: Any) -> Optional[str]:
    """
    从响应头或JSON响应体中检测版本号

    优先使用 X-Version 响应头（不区分大小写），其次使用JSON对象中的 version 字段。

    Args:
        headers: 响应头
        body: 已解析的JSON响应体，无法解析时为None

    Returns:
        Optional[str]: 版本号，未检测到时返回None
    """
    if headers:
        for name, value in headers.items():
            if name.lower() == VERSION_HEADER and value:
                return value

    if isinstance(body, dict) and 'version' in body:
        return version_to_string(body['version'])

    return None
