"""
规则条件匹配
"""
import re
from functools import lru_cache
from typing import Any, Optional

from .dto import KeywordCondition, RegexCondition, SanitizationRule
from ..utils.logger import get_logger

logger = get_logger(__name__)


class MatchContext:
    """待匹配的字段上下文"""

    def __init__(self, field_name: Optional[str] = None, value: Any = None, service: Optional[str] = None):
        self.field_name = field_name
        self.value = value
        self.service = service

    def __repr__(self):
        return f"<MatchContext(field_name={self.field_name}, service={self.service})>"


@lru_cache(maxsize=512)
def _compile(pattern: str) -> "re.Pattern[str]":
    return re.compile(pattern)


def compile_pattern(pattern: str) -> Optional["re.Pattern[str]"]:
    """
    编译正则表达式（带缓存）

    正则应在规范化阶段就已校验过；运行时编译失败只记录错误并返回 None
    """
    try:
        return _compile(pattern)
    except re.error as e:
        logger.error(f"Regex compile failed at match time: pattern={pattern!r}, error={e}")
        return None


def _match_keywords(condition: KeywordCondition, field_name: Optional[str]) -> bool:
    if not field_name:
        return False
    if condition.case_sensitive:
        return any(keyword in field_name for keyword in condition.keywords)
    lowered = field_name.lower()
    return any(keyword.lower() in lowered for keyword in condition.keywords)


def _match_regex(condition: RegexCondition, value: Any) -> bool:
    if value is None:
        return False
    compiled = compile_pattern(condition.pattern)
    if compiled is None:
        return False
    return compiled.search(str(value)) is not None


def matches(condition, context: MatchContext) -> bool:
    """
    判断条件是否命中

    Args:
        condition: RegexCondition 或 KeywordCondition
        context: 字段名和字段值

    Returns:
        key_keyword: 字段名包含任一关键词（默认大小写不敏感）
        regex: 字段值中任意位置匹配正则（不自动加锚点）
    """
    if isinstance(condition, KeywordCondition):
        return _match_keywords(condition, context.field_name)
    if isinstance(condition, RegexCondition):
        return _match_regex(condition, context.value)
    logger.warning(f"Unknown condition type: {getattr(condition, 'type', condition)!r}")
    return False


def applies_to_service(rule: SanitizationRule, service: Optional[str]) -> bool:
    """
    检查规则的服务范围

    includeServices 非空时只对列出的服务生效；excludeServices 中的服务永不生效。
    未指定服务时不做范围检查。
    """
    if service is None:
        return True
    if rule.exclude_services and service in rule.exclude_services:
        return False
    if rule.include_services:
        return service in rule.include_services
    return True


def rule_matches(rule: SanitizationRule, context: MatchContext) -> bool:
    """规则是否适用于该上下文（服务范围 + 条件）"""
    return applies_to_service(rule, context.service) and matches(rule.condition, context)
