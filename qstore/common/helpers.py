"""通用辅助函数

提供时间戳等常用辅助函数。
"""

from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """当前 UTC 时间"""
    return datetime.now(timezone.utc)


def utc_timestamp_iso(moment: Optional[datetime] = None) -> str:
    """ISO 8601 UTC 时间戳（秒精度，Z 结尾），如 2024-01-01T08:30:00Z"""
    moment = moment or utc_now()
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def get_formatted_timestamp(
    format: str = "%Y-%m-%d_%H%M%S", moment: Optional[datetime] = None
) -> str:
    """获取格式化的 UTC 时间戳，不带时区的时间按 UTC 处理

    不使用本地时间，夏令时切换前后的时间戳也能按字符串排序
    """
    moment = moment or utc_now()
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).strftime(format)
