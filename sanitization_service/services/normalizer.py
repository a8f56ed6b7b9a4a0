"""
规则规范化

把旧格式（pattern / fieldNames / severity / maskValue）和新格式
（condition + action）的规则统一转换为 SanitizationRule。
规范化之后调用方不会再看到旧格式。
"""
import uuid
from typing import Any, Dict, Mapping, Optional, Union

from pydantic import ValidationError

from .dto import SanitizationRule
from .errors import RuleValidationError
from ..utils.datetime_helper import utc_now

LEGACY_KEYS = ("pattern", "fieldNames", "severity", "maskValue")

# 旧格式 severity -> 新格式 sensitivity，未知值一律为 low
SEVERITY_TO_SENSITIVITY = {
    "CRITICAL": "critical",
    "HIGH": "high",
    "MEDIUM": "medium",
}


def generate_rule_id() -> str:
    """生成新的规则ID"""
    return str(uuid.uuid4())


def is_legacy_rule(raw: Mapping[str, Any]) -> bool:
    """判断是否为旧格式规则"""
    if raw.get("condition") is not None and raw.get("action") is not None:
        return False
    return any(key in raw for key in LEGACY_KEYS)


def convert_legacy_rule(raw: Mapping[str, Any]) -> Dict[str, Any]:
    """
    将旧格式规则转换为新格式字典（不做校验）

    Args:
        raw: 旧格式规则

    Returns:
        包含 condition/action/sensitivity 的新格式字典
    """
    pattern = raw.get("pattern")
    field_names = raw.get("fieldNames") or []
    severity = raw.get("severity")
    mask_value = raw.get("maskValue") or ""

    converted = {
        key: value for key, value in raw.items()
        if key not in LEGACY_KEYS and key not in ("type", "condition", "action")
    }
    converted.setdefault("category", "personal_info")
    converted["sensitivity"] = SEVERITY_TO_SENSITIVITY.get(
        severity.upper() if isinstance(severity, str) else None, "low"
    )

    if pattern:
        converted["condition"] = {"type": "regex", "pattern": pattern}
    elif field_names:
        converted["condition"] = {"type": "key_keyword", "keywords": list(field_names)}
    else:
        converted["condition"] = None

    converted["action"] = {
        "algorithm": "mask",
        "params": {
            "maskChar": "*",
            "prefix": 3 if "***" in mask_value else 2,
            "suffix": 4 if "****" in mask_value else 0,
            "keepDomain": bool(pattern) and "@" in pattern,
        },
    }
    return converted


def _synthesize_metadata(raw: Mapping[str, Any]) -> Dict[str, Any]:
    metadata = raw.get("metadata")
    if isinstance(metadata, Mapping) and metadata:
        metadata = dict(metadata)
    else:
        metadata = {}

    now = utc_now()
    created_at = metadata.get("createdAt", metadata.get("created_at")) or raw.get("createdAt") or now
    updated_at = metadata.get("updatedAt", metadata.get("updated_at")) or raw.get("updatedAt") or created_at

    return {
        "createdAt": created_at,
        "updatedAt": updated_at,
        "version": metadata.get("version") or raw.get("version") or "1.0",
        "author": metadata.get("author") or raw.get("createdBy") or "system",
    }


def _first_error_field(error: ValidationError) -> str:
    details = error.errors()
    if not details:
        return "rule"
    # 联合类型的标签会出现在 loc 中（例如 condition.regex.pattern），去掉后更易读
    loc = [str(part) for part in details[0].get("loc", ()) if part not in ("regex", "key_keyword", "mask", "hash", "encrypt", "replace", "remove")]
    return ".".join(loc) or "rule"


def _require_text(raw: Mapping[str, Any], field: str):
    value = raw.get(field)
    if not isinstance(value, str) or not value.strip():
        raise RuleValidationError(field, f"{field} is required")


def normalize(
    raw: Union[Mapping[str, Any], SanitizationRule],
    rule_id: Optional[str] = None,
) -> SanitizationRule:
    """
    将任意格式的规则规范化为 SanitizationRule

    Args:
        raw: 新格式或旧格式的规则字典，或已规范化的规则
        rule_id: 强制使用的规则ID（更新时使用）；为空时使用 raw 中的 id，再为空则生成

    Returns:
        规范化后的规则

    Raises:
        RuleValidationError: name/description 为空、正则无法编译、关键词全部为空等
    """
    if isinstance(raw, SanitizationRule):
        raw = raw.model_dump(by_alias=True)
    if not isinstance(raw, Mapping):
        raise RuleValidationError("rule", "rule must be an object")

    data = convert_legacy_rule(raw) if is_legacy_rule(raw) else dict(raw)

    _require_text(data, "name")
    _require_text(data, "description")
    if not data.get("condition"):
        raise RuleValidationError("condition", "condition is required")
    if not data.get("action"):
        raise RuleValidationError("action", "action is required")

    data["id"] = rule_id or data.get("id") or generate_rule_id()
    data["metadata"] = _synthesize_metadata(data)
    for key in ("createdAt", "updatedAt", "createdBy", "version"):
        data.pop(key, None)

    try:
        return SanitizationRule.model_validate(data)
    except ValidationError as e:
        first = e.errors()[0] if e.errors() else {}
        raise RuleValidationError(_first_error_field(e), first.get("msg", str(e))) from e
