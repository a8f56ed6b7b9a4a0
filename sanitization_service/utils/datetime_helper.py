"""
日期时间辅助工具
用于统一处理规则时间戳，确保前端和存储层看到的都是 UTC 秒级时间
"""
from datetime import datetime, timezone
from typing import Any, Optional


def to_iso_string(dt: Optional[datetime]) -> Optional[str]:
    """
    将 datetime 对象转换为 ISO 8601 格式字符串（带 UTC 时区标识）

    Args:
        dt: datetime 对象（可以为 None）

    Returns:
        ISO 8601 格式字符串，带 'Z' 后缀表示 UTC 时区
        如果输入为 None，返回 None

    Examples:
        >>> dt = datetime(2024, 11, 3, 6, 30, 0)
        >>> to_iso_string(dt)
        '2024-11-03T06:30:00Z'
    """
    if dt is None:
        return None

    return ensure_utc(dt).isoformat().replace('+00:00', 'Z')


def ensure_utc(dt: datetime) -> datetime:
    """
    统一为带时区的 UTC 时间，并去掉微秒

    没有时区信息的时间按 UTC 处理（SQLite 读回的时间没有时区）
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).replace(microsecond=0)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    解析各种形式的时间戳

    Args:
        value: datetime、ISO 8601 字符串、毫秒级时间戳或 None

    Returns:
        UTC datetime；无法识别时返回 None
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        # 前端使用 Date.now() 毫秒时间戳
        return ensure_utc(datetime.fromtimestamp(value / 1000, tz=timezone.utc))
    if isinstance(value, str):
        text = value.strip()
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        try:
            return ensure_utc(datetime.fromisoformat(text))
        except ValueError:
            return None
    return None


def utc_now() -> datetime:
    """
    获取当前 UTC 时间（带时区信息，秒级精度）

    Returns:
        带 UTC 时区信息的 datetime 对象
    """
    return datetime.now(timezone.utc).replace(microsecond=0)


def now_millis() -> int:
    """当前时间的毫秒时间戳，用于响应中的 timestamp 字段"""
    return int(datetime.now(timezone.utc).timestamp() * 1000)
