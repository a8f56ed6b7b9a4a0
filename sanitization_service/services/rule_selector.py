"""
规则选择与评估顺序

选择顺序：
1. 全局开关关闭时不返回任何规则
2. 去掉 enabled=false 的规则，再按调用方给出的 enabled/category/sensitivity 精确过滤
3. 按 sensitivity（critical > high > medium > low）、priority 升序、createdAt 降序排序

同一字段命中多条规则时，默认只执行排序后的第一条（MatchPolicy.FIRST_MATCH）；
CUMULATIVE 需要调用方显式指定，按顺序依次执行所有命中规则。
"""
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from .action_executor import apply
from .condition_matcher import MatchContext, rule_matches
from .dto import RemoveAction, RuleFilters, SanitizationRule


class MatchPolicy(str, Enum):
    """多条规则命中同一字段时的处理策略"""
    FIRST_MATCH = "first_match"
    CUMULATIVE = "cumulative"


def _as_filters(filters: Union[RuleFilters, Mapping[str, Any], None]) -> RuleFilters:
    if filters is None:
        return RuleFilters()
    if isinstance(filters, RuleFilters):
        return filters
    return RuleFilters.model_validate(dict(filters))


def sort_rules(rules: Iterable[SanitizationRule]) -> List[SanitizationRule]:
    """按评估顺序排序（稳定排序）"""
    newest_first = sorted(rules, key=lambda r: r.created_at, reverse=True)
    return sorted(newest_first, key=lambda r: (r.severity_weight, r.priority))


def select(
    rules: Iterable[SanitizationRule],
    global_enabled: bool,
    filters: Union[RuleFilters, Mapping[str, Any], None] = None,
) -> List[SanitizationRule]:
    """
    选出当前生效的规则并排序

    Args:
        rules: 全部规则
        global_enabled: 全局开关
        filters: 可选过滤条件 {enabled, category, sensitivity}

    Returns:
        按评估顺序排列的规则列表
    """
    if not global_enabled:
        return []

    filters = _as_filters(filters)
    active = [rule for rule in rules if rule.enabled]

    if filters.enabled is not None:
        active = [rule for rule in active if rule.enabled == filters.enabled]
    if filters.category is not None:
        active = [rule for rule in active if rule.category == filters.category]
    if filters.sensitivity is not None:
        active = [rule for rule in active if rule.sensitivity == filters.sensitivity]

    return sort_rules(active)


def resolve(ordered_rules: Iterable[SanitizationRule], context: MatchContext) -> Optional[SanitizationRule]:
    """返回第一条命中的规则，没有命中时返回 None"""
    for rule in ordered_rules:
        if rule_matches(rule, context):
            return rule
    return None


def matching_rules(ordered_rules: Iterable[SanitizationRule], context: MatchContext) -> List[SanitizationRule]:
    """返回所有命中的规则（保持评估顺序）"""
    return [rule for rule in ordered_rules if rule_matches(rule, context)]


def sanitize_record(
    record: Mapping[str, Any],
    rules: Iterable[SanitizationRule],
    global_enabled: bool = True,
    policy: MatchPolicy = MatchPolicy.FIRST_MATCH,
    service: Optional[str] = None,
) -> Dict[str, Any]:
    """
    对一条扁平记录做脱敏预览

    Args:
        record: 字段名 -> 值
        rules: 全部规则（内部会先 select）
        global_enabled: 全局开关
        policy: 多规则命中策略
        service: 调用方服务名，用于 include/excludeServices 范围检查

    Returns:
        脱敏后的新字典；remove 动作会删除字段，未命中的字段原样保留
    """
    ordered = select(rules, global_enabled)
    if not ordered:
        return dict(record)

    result: Dict[str, Any] = {}
    for field_name, value in record.items():
        context = MatchContext(field_name=field_name, value=value, service=service)

        if policy == MatchPolicy.FIRST_MATCH:
            winner = resolve(ordered, context)
            hits = [winner] if winner is not None else []
        else:
            hits = matching_rules(ordered, context)

        if not hits:
            result[field_name] = value
            continue

        removed = False
        current = value
        for rule in hits:
            if isinstance(rule.action, RemoveAction):
                removed = True
                break
            current = apply(rule.action, current)

        if not removed:
            result[field_name] = current

    return result
