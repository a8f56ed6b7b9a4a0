"""
规则校验与试运行（编辑规则时的预览）
"""
from typing import Any, Mapping, Optional

from .action_executor import apply
from .condition_matcher import compile_pattern
from .dto import RegexCondition, RuleTestResult, RuleValidationResult
from .errors import RuleValidationError
from .normalizer import normalize
from ..utils.datetime_helper import now_millis


def preview_rule(raw: Mapping[str, Any], test_input: Optional[str] = None) -> RuleValidationResult:
    """
    校验草稿规则，并可选地用测试输入试运行

    Args:
        raw: 规则草稿（新旧格式均可）
        test_input: 测试输入

    Returns:
        RuleValidationResult；regex 规则对每个匹配片段执行动作，
        key_keyword 规则把整段输入当作命中字段的值
    """
    try:
        rule = normalize(raw)
    except RuleValidationError as e:
        return RuleValidationResult(
            valid=False,
            errors=[str(e)],
            message="Validation failed",
            timestamp=now_millis(),
        )

    test_result = None
    if test_input is not None:
        if isinstance(rule.condition, RegexCondition):
            compiled = compile_pattern(rule.condition.pattern)
            found = [m.group(0) for m in compiled.finditer(test_input)] if compiled else []
            masked = compiled.sub(lambda m: apply(rule.action, m.group(0)), test_input) if compiled else test_input
        else:
            found = [test_input] if test_input else []
            masked = apply(rule.action, test_input)
        test_result = RuleTestResult(input=test_input, matches=found, masked=masked)

    return RuleValidationResult(
        valid=True,
        errors=[],
        message="Validation successful",
        test_result=test_result,
        test_output=test_result.masked if test_result else None,
        timestamp=now_millis(),
    )
